"""
Output sinks for query results.
"""

from .result_logger import (
    ResultLogger,
    PrettyResultLogger,
    FormatOptions,
    format_record,
    format_timestamp,
    pretty_json
)

__all__ = [
    "ResultLogger",
    "PrettyResultLogger",
    "FormatOptions",
    "format_record",
    "format_timestamp",
    "pretty_json"
]
