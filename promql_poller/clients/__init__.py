"""
API clients for the Prometheus query API.
"""

from .query_client import QueryExecutor, build_query_url, QUERY_PATH

__all__ = [
    "QueryExecutor",
    "build_query_url",
    "QUERY_PATH"
]
