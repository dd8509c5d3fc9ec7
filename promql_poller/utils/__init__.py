"""
Utility modules for the PromQL poller.
"""

from .errors import PollerError, NetworkError, ReadError, ConfigurationError, FormatError
from .structured_logging import LoggingManager, logging_manager, bind_query_name

__all__ = [
    "PollerError",
    "NetworkError",
    "ReadError",
    "ConfigurationError",
    "FormatError",
    "LoggingManager",
    "logging_manager",
    "bind_query_name",
]
