"""
Pytest configuration and shared fixtures.
"""

import asyncio
import io
import json
import socket
import time
from datetime import datetime, timedelta

import pytest

from promql_poller.config.models import QueryDefinition
from promql_poller.models.core import FetchOutcome
from promql_poller.output.result_logger import ResultLogger
from promql_poller.utils.errors import NetworkError

SUCCESS_PAYLOAD = b'{"status":"success","data":{"resultType":"vector","result":[]}}'


class FakeQueryExecutor:
    """
    In-memory stand-in for QueryExecutor.

    Records when each query was started; queries listed in ``failing``
    fail with a NetworkError.
    """

    def __init__(self, payload: bytes = SUCCESS_PAYLOAD, delay: float = 0.0, failing=()):
        self.payload = payload
        self.delay = delay
        self.failing = set(failing)
        self.calls = []
        self.active = 0

    def call_times(self, name: str):
        return [started for called, started in self.calls if called == name]

    async def fetch(self, definition: QueryDefinition) -> bytes:
        self.calls.append((definition.name, time.monotonic()))
        self.active += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if definition.name in self.failing:
            url = f"{definition.server}/api/v1/query"
            raise NetworkError(f'Get "{url}": connection refused', url=url)
        return self.payload

    async def execute(self, definition: QueryDefinition) -> FetchOutcome:
        timestamp = datetime.now().astimezone()
        try:
            payload = await self.fetch(definition)
        except NetworkError as e:
            return FetchOutcome(name=definition.name, timestamp=timestamp, error=e)
        return FetchOutcome(name=definition.name, timestamp=timestamp, payload=payload)


class TerminalStringIO(io.StringIO):
    """StringIO that reports itself as a terminal."""

    def isatty(self):
        return True


def make_query(name="up", interval=0.3, server="http://localhost:9090", expression="up"):
    return QueryDefinition(
        name=name,
        server=server,
        expression=expression,
        interval=timedelta(seconds=interval) if interval is not None else None,
    )


def read_records(stream: io.StringIO):
    """Parse every line written to a result sink."""
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def record_times(stream: io.StringIO):
    """Parse the ``time`` field of every record written to a result sink."""
    return [
        datetime.strptime(record["time"], "%Y-%m-%d %H:%M:%S.%f %z")
        for record in read_records(stream)
    ]


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def sink():
    """Text sink for result records."""
    return io.StringIO()


@pytest.fixture
def result_logger(sink):
    return ResultLogger(stream=sink)


@pytest.fixture
def fake_executor():
    return FakeQueryExecutor()
