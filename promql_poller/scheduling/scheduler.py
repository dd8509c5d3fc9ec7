"""
Query scheduler for continuous polling, plus the single-pass and one-shot
runners used by the CLI.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol

from promql_poller.config.models import QueryDefinition
from promql_poller.models.core import FetchOutcome
from promql_poller.scheduling.poll_task import OutcomeSink, PollTask, QueryRunner

logger = logging.getLogger(__name__)


class TerminationSource(Protocol):
    async def wait(self) -> None: ...


class SchedulerState(Enum):
    """Scheduler state enumeration."""
    STOPPED = "stopped"
    RUNNING = "running"


class QueryScheduler:
    """
    Runs every configured query on its own interval until stopped.

    All poll tasks share one cancellation event. ``stop`` sets it once and
    returns immediately; in-flight cycles are left to finish unless the
    caller joins them with ``wait_closed`` or cancels them with ``abort``.
    """

    def __init__(
        self,
        queries: Mapping[str, QueryDefinition],
        executor: QueryRunner,
        result_logger: OutcomeSink
    ):
        """
        Initialize the scheduler.

        Args:
            queries: Query definitions keyed by name
            executor: Shared query executor
            result_logger: Shared result sink
        """
        self.queries = queries
        self.executor = executor
        self.result_logger = result_logger

        self._state = SchedulerState.STOPPED
        self._cancel_event: Optional[asyncio.Event] = None
        self._poll_tasks: Dict[str, PollTask] = {}

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def poll_tasks(self) -> Dict[str, PollTask]:
        return dict(self._poll_tasks)

    def start(self) -> None:
        """
        Start one poll task per configured query.

        Must be called from a running event loop.
        """
        if self._cancel_event is not None:
            logger.warning(f"Scheduler already started, current state: {self._state.value}")
            return

        if not self.queries:
            logger.warning("No queries configured, nothing will be polled")

        self._cancel_event = asyncio.Event()
        for name, definition in self.queries.items():
            poll_task = PollTask(definition, self.executor, self.result_logger, self._cancel_event)
            poll_task.start()
            self._poll_tasks[name] = poll_task

        self._state = SchedulerState.RUNNING
        logger.info(f"Query scheduler started with {len(self._poll_tasks)} queries")

    def stop(self) -> None:
        """Signal every poll task to stop. Safe to call more than once."""
        if self._cancel_event is None or self._cancel_event.is_set():
            return

        self._cancel_event.set()
        self._state = SchedulerState.STOPPED
        logger.info("Query scheduler stopped")

    async def run(self, termination: TerminationSource) -> None:
        """
        Poll until the termination source fires, then stop.

        Returns as soon as cancellation has been broadcast; it does not wait
        for in-flight cycles.
        """
        self.start()
        try:
            await termination.wait()
            logger.info("Termination requested")
        finally:
            self.stop()

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for poll tasks and their in-flight cycles to finish.

        Args:
            timeout: Seconds to wait, None waits forever

        Returns:
            True if everything finished within the timeout
        """
        if not self._poll_tasks:
            return True

        waiters = [
            asyncio.create_task(poll_task.wait_closed())
            for poll_task in self._poll_tasks.values()
        ]
        done, pending = await asyncio.wait(waiters, timeout=timeout)

        for waiter in pending:
            waiter.cancel()

        if pending:
            in_flight = sum(poll_task.in_flight for poll_task in self._poll_tasks.values())
            logger.warning(
                f"Gave up waiting after {timeout}s with {in_flight} queries still in flight"
            )
            return False
        return True

    async def abort(self) -> None:
        """Cancel every in-flight cycle once polling has stopped."""
        self.stop()
        for poll_task in self._poll_tasks.values():
            await poll_task.abort()

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status.

        Returns:
            Dictionary with scheduler and per-query status information
        """
        query_status = {}
        for name, definition in self.queries.items():
            poll_task = self._poll_tasks.get(name)
            if poll_task is not None:
                query_status[name] = poll_task.get_status()
            else:
                query_status[name] = {
                    "name": name,
                    "server": definition.server,
                    "interval": definition.interval_seconds,
                    "state": "stopped",
                    "cycles_started": 0,
                    "in_flight": 0,
                }

        return {
            "state": self._state.value,
            "total_queries": len(self.queries),
            "running_queries": sum(
                1 for pt in self._poll_tasks.values() if pt.state.value == "running"
            ),
            "in_flight": sum(pt.in_flight for pt in self._poll_tasks.values()),
            "queries": query_status,
        }


async def run_once(queries: Mapping[str, QueryDefinition], executor, result_logger) -> int:
    """
    Run every query once, one after another.

    The first fetch or formatting failure propagates and the remaining
    queries are not run.

    Returns:
        Number of records written
    """
    count = 0
    for name, definition in queries.items():
        await run_query(definition, executor, result_logger, name=name)
        count += 1
    return count


async def run_query(
    definition: QueryDefinition,
    executor,
    result_logger,
    name: Optional[str] = None
) -> None:
    """Run one query and log its result. Failures propagate."""
    name = name or definition.name
    payload = await executor.fetch(definition)
    timestamp = datetime.now().astimezone()
    result_logger.log(name, timestamp, FetchOutcome(name=name, timestamp=timestamp, payload=payload))
