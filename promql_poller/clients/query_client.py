"""
Prometheus query API client.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote_plus

import aiohttp
from yarl import URL

from ..config.models import HTTPConfig, QueryDefinition
from ..models.core import FetchOutcome
from ..utils.errors import NetworkError, ReadError


logger = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"


def build_query_url(server: str, expression: str) -> str:
    """Build the instant query URL for an expression."""
    return f"{server.rstrip('/')}{QUERY_PATH}?query={quote_plus(expression)}"


class QueryExecutor:
    """
    Executes PromQL queries against a Prometheus-compatible HTTP API.

    Each call issues exactly one GET request and reads the whole body. The
    payload is returned as raw bytes whatever the response status; there
    are no retries.
    """

    def __init__(self, http_config: Optional[HTTPConfig] = None):
        """
        Initialize the executor with configuration.

        Args:
            http_config: HTTP client settings
        """
        self.http_config = http_config or HTTPConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.http_config.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch(self, definition: QueryDefinition) -> bytes:
        """
        Run a query and return the raw response body.

        Args:
            definition: Query to execute

        Returns:
            Response body bytes

        Raises:
            NetworkError: If the request cannot be sent or the connection fails
            ReadError: If the response body cannot be fully read
        """
        if self._session is None:
            raise RuntimeError("QueryExecutor must be used as async context manager")

        url = build_query_url(definition.server, definition.expression)
        logger.debug("GET %s", url)

        try:
            response = await self._session.get(URL(url, encoded=True))
        except asyncio.TimeoutError as e:
            raise NetworkError(f'Get "{url}": request timed out', url=url) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f'Get "{url}": {e}', url=url) from e

        try:
            async with response:
                return await response.read()
        except asyncio.TimeoutError as e:
            raise ReadError(f'Read "{url}": timed out reading response body', url=url) from e
        except aiohttp.ClientError as e:
            raise ReadError(f'Read "{url}": {e}', url=url) from e

    async def execute(self, definition: QueryDefinition) -> FetchOutcome:
        """
        Run a query and capture the result or failure as an outcome.

        Network and read failures are returned inside the outcome rather
        than raised.
        """
        timestamp = datetime.now().astimezone()
        try:
            payload = await self.fetch(definition)
        except (NetworkError, ReadError) as e:
            logger.warning("Query %s failed: %s", definition.name, e)
            return FetchOutcome(name=definition.name, timestamp=timestamp, error=e)

        return FetchOutcome(name=definition.name, timestamp=timestamp, payload=payload)
