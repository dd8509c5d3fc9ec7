"""
Error taxonomy for query execution, configuration and output formatting.
"""

from typing import Optional


class PollerError(Exception):
    """Base class for all poller errors."""


class NetworkError(PollerError):
    """The request could not be sent or the connection failed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ReadError(PollerError):
    """The response body could not be fully read."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class ConfigurationError(PollerError):
    """Configuration is missing or malformed."""


class FormatError(PollerError):
    """A result could not be formatted for output."""
