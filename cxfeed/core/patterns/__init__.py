"""Execution patterns: deadlines and request throttling."""

from .deadline import Completed, Deadline, DeadlineResult, TimedOut, run_with_deadline
from .throttle import TokenBucket

__all__ = [
    "Completed",
    "Deadline",
    "DeadlineResult",
    "TimedOut",
    "TokenBucket",
    "run_with_deadline",
]
