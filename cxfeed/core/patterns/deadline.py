"""Race an awaitable against a fixed deadline."""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Completed(Generic[T]):
    """The operation finished before the deadline."""

    value: T


@dataclass(frozen=True)
class TimedOut:
    """The deadline elapsed first; the operation was abandoned."""

    after: float


DeadlineResult = Completed[T] | TimedOut


def _discard_late_outcome(task: asyncio.Future) -> None:
    # Retrieve the outcome so an abandoned failure is not reported as unhandled.
    if not task.cancelled():
        task.exception()


class Deadline:
    """Run operations with a deadline, returning a tagged result instead of raising on timeout.

    Exceptions raised by the operation before the deadline propagate unchanged.
    An operation still pending at the deadline is cancelled and its eventual
    outcome is discarded, so a late response can never reach the caller.
    """

    def __init__(self, timeout: float):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout

    async def run(self, operation: Awaitable[T]) -> DeadlineResult[T]:
        task = asyncio.ensure_future(operation)
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if task in done:
            return Completed(task.result())

        task.cancel()
        task.add_done_callback(_discard_late_outcome)
        return TimedOut(self.timeout)


async def run_with_deadline(operation: Awaitable[T], timeout: float) -> DeadlineResult[T]:
    """Shortcut for ``Deadline(timeout).run(operation)``."""
    return await Deadline(timeout).run(operation)
