"""Token bucket used to self-throttle upstream requests."""

import asyncio
import time
from collections.abc import Awaitable, Callable


class TokenBucket:
    """Token bucket refilled continuously at one token per ``refill_interval`` seconds.

    With the default capacity of 1 consecutive :meth:`acquire` calls are
    spaced at least ``refill_interval`` apart; the first one never waits.
    """

    def __init__(
        self,
        refill_interval: float = 1.0,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if refill_interval < 0:
            raise ValueError("refill_interval must be non-negative")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.refill_interval = refill_interval
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated_at = clock()
        self.total_wait = 0.0

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._updated_at = now
        if self.refill_interval == 0:
            self._tokens = float(self.capacity)
            return
        self._tokens = min(float(self.capacity), self._tokens + elapsed / self.refill_interval)

    async def acquire(self) -> float:
        """Take one token, waiting for it if needed. Returns the seconds waited."""
        self._refill()
        waited = 0.0
        if self._tokens < 1:
            waited = (1 - self._tokens) * self.refill_interval
            await self._sleep(waited)
            self._refill()
            # An injected sleep may not advance the clock.
            self._tokens = max(self._tokens, 1.0)
        self._tokens -= 1
        self.total_wait += waited
        return waited
