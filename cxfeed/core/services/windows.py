"""Classify timestamps against a reference instant fixed for the whole run."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

DAY_MS = 24 * 60 * 60 * 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def to_epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return (moment - _EPOCH) // _ONE_MS


class WindowClassifier:
    """Recency buckets and staleness relative to one captured ``now``.

    All comparisons are plain millisecond arithmetic. Upper bounds are
    inclusive; the lower bound of the 24-48h band is exclusive.
    """

    def __init__(self, now_ms: int, stale_after_ms: int = DAY_MS):
        self.now_ms = now_ms
        self.stale_after_ms = stale_after_ms

    @classmethod
    def at(cls, now: datetime, stale_after_hours: float = 24.0) -> WindowClassifier:
        return cls(to_epoch_ms(now), int(stale_after_hours * 60 * 60 * 1000))

    def age_ms(self, epoch_ms: int) -> int:
        return self.now_ms - epoch_ms

    def is_last_24h(self, epoch_ms: int) -> bool:
        return self.age_ms(epoch_ms) <= DAY_MS

    def is_yesterday(self, epoch_ms: int) -> bool:
        age = self.age_ms(epoch_ms)
        return DAY_MS < age <= 2 * DAY_MS

    def is_last_7d(self, epoch_ms: int) -> bool:
        return self.age_ms(epoch_ms) <= 7 * DAY_MS

    def is_last_30d(self, epoch_ms: int) -> bool:
        return self.age_ms(epoch_ms) <= 30 * DAY_MS

    def is_stale(self, refreshed_at: datetime | None) -> bool:
        """True when never refreshed or at least ``stale_after`` old."""
        if refreshed_at is None:
            return True
        return self.age_ms(to_epoch_ms(refreshed_at)) >= self.stale_after_ms
