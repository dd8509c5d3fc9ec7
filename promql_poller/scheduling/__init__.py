"""
Scheduling for recurring query execution.
"""

from .poll_task import PollTask, PollTaskState
from .scheduler import QueryScheduler, SchedulerState, run_once, run_query
from .signals import TerminationSignal

__all__ = [
    'PollTask',
    'PollTaskState',
    'QueryScheduler',
    'SchedulerState',
    'run_once',
    'run_query',
    'TerminationSignal',
]
