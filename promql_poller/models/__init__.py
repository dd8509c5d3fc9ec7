"""
Core data models for the PromQL poller.
"""

from .core import FetchOutcome

__all__ = ["FetchOutcome"]
