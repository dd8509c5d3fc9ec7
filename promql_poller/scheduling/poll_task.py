"""
Poll task: the recurring execute-then-log loop owned by one query.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Protocol, Set

from apscheduler.triggers.interval import IntervalTrigger

from promql_poller.config.models import QueryDefinition
from promql_poller.models.core import FetchOutcome
from promql_poller.utils.errors import ConfigurationError
from promql_poller.utils.structured_logging import bind_query_name

logger = logging.getLogger(__name__)


class QueryRunner(Protocol):
    async def execute(self, definition: QueryDefinition) -> FetchOutcome: ...


class OutcomeSink(Protocol):
    def log(self, name: str, timestamp: datetime, outcome: FetchOutcome) -> None: ...


class PollTaskState(Enum):
    """Poll task state enumeration."""
    STOPPED = "stopped"
    RUNNING = "running"


class PollTask:
    """
    Runs one query immediately and then on a fixed period until cancelled.

    Ticks are anchored to the start time: the k-th tick is due at
    ``start + k * interval`` no matter how long earlier cycles took. Each
    cycle runs as its own asyncio task, so a slow query never delays the
    next tick and cycles of the same query may overlap.

    The task stops when the shared cancellation event is set. Cycles that
    are already in flight at that moment are not awaited by the loop; use
    ``wait_closed`` to join them.
    """

    def __init__(
        self,
        definition: QueryDefinition,
        executor: QueryRunner,
        result_logger: OutcomeSink,
        cancel_event: asyncio.Event
    ):
        """
        Initialize the poll task.

        Args:
            definition: Query to poll, must carry an interval
            executor: Runs the query and returns an outcome
            result_logger: Receives every outcome
            cancel_event: Shared cancellation signal
        """
        if definition.interval is None:
            raise ConfigurationError(f"Query '{definition.name}' has no polling interval")

        self.definition = definition
        self.executor = executor
        self.result_logger = result_logger
        self.cancel_event = cancel_event

        self._state = PollTaskState.STOPPED
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

        self.cycles_started = 0
        self.start_time: Optional[datetime] = None
        self.last_tick: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def state(self) -> PollTaskState:
        return self._state

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def start(self) -> asyncio.Task:
        """Start polling in a new asyncio task."""
        if self._task is not None:
            raise RuntimeError(f"Poll task for {self.name} already started")

        self._state = PollTaskState.RUNNING
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.name}")
        return self._task

    async def _run(self) -> None:
        bind_query_name(self.name)
        interval = self.definition.interval

        try:
            start = datetime.now(timezone.utc)
            self.start_time = start
            trigger = IntervalTrigger(
                seconds=interval.total_seconds(),
                start_date=start,
                timezone=timezone.utc
            )

            logger.info(f"Polling {self.name} every {interval}")

            # Fire at start, then on the interval grid
            self._spawn_cycle()
            previous = start

            while not self.cancel_event.is_set():
                now = datetime.now(timezone.utc)
                next_fire = self._next_fire_time(trigger, previous, now, interval)

                if await self._wait_cancelled((next_fire - now).total_seconds()):
                    break

                previous = next_fire
                self.last_tick = next_fire
                self._spawn_cycle()
        finally:
            self._state = PollTaskState.STOPPED
            logger.info(f"Poll task for {self.name} stopped")

    def _next_fire_time(
        self,
        trigger: IntervalTrigger,
        previous: datetime,
        now: datetime,
        interval: timedelta
    ) -> datetime:
        next_fire = trigger.get_next_fire_time(previous, now)
        if next_fire + interval > now:
            return next_fire

        # The loop fell more than a full interval behind; coalesce the
        # missed ticks into one run at the latest slot.
        latest = trigger.get_next_fire_time(None, now)
        if latest > now:
            latest -= interval
        logger.warning(f"Poll task for {self.name} missed ticks between {next_fire} and {latest}")
        return latest

    async def _wait_cancelled(self, delay: float) -> bool:
        """Wait for cancellation or until the delay elapses; True if cancelled."""
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=max(delay, 0.0))
            return True
        except asyncio.TimeoutError:
            return self.cancel_event.is_set()

    def _spawn_cycle(self) -> None:
        self.cycles_started += 1
        cycle = asyncio.create_task(
            self._run_cycle(), name=f"poll:{self.name}:{self.cycles_started}"
        )
        self._inflight.add(cycle)
        cycle.add_done_callback(self._inflight.discard)

    async def _run_cycle(self) -> None:
        """Execute the query once and log the outcome."""
        try:
            outcome = await self.executor.execute(self.definition)
            self.result_logger.log(self.name, datetime.now().astimezone(), outcome)
        except Exception:
            logger.exception(f"Poll cycle for {self.name} failed")

    async def wait_closed(self) -> None:
        """Wait until the loop has exited and every in-flight cycle finished."""
        if self._task is not None:
            await asyncio.wait([self._task])
        while self._inflight:
            await asyncio.wait(set(self._inflight))

    async def abort(self) -> None:
        """
        Cancel in-flight cycles and wait for them to unwind.

        A cancelled cycle writes no record. Call this after cancellation and
        before the executor is closed, so that requests cut off by the
        closing session are not reported as network failures.
        """
        cycles = set(self._inflight)
        if not cycles:
            return

        for cycle in cycles:
            cycle.cancel()
        await asyncio.wait(cycles)
        logger.info(f"Abandoned {len(cycles)} in-flight cycles for {self.name}")

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "server": self.definition.server,
            "interval": self.definition.interval_seconds,
            "state": self._state.value,
            "cycles_started": self.cycles_started,
            "in_flight": self.in_flight,
            "start_time": self.start_time,
            "last_tick": self.last_tick,
        }
