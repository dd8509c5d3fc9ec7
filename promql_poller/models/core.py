"""
Core data models for the PromQL poller.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from promql_poller.utils.errors import PollerError


@dataclass(frozen=True)
class FetchOutcome:
    """
    Result of a single query execution attempt.

    ``timestamp`` is when execution started. Result records are stamped
    with the time they are logged instead, which keeps the records of one
    query in time order when its cycles overlap.
    """
    name: str
    timestamp: datetime
    payload: Optional[bytes] = None
    error: Optional[PollerError] = None

    def __post_init__(self):
        if (self.payload is None) == (self.error is None):
            raise ValueError("FetchOutcome needs exactly one of payload or error")

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def result_text(self) -> str:
        """Payload decoded as UTF-8, or the error message for failures."""
        if self.error is not None:
            return str(self.error)
        return self.payload.decode("utf-8", errors="replace")
