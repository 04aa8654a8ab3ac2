"""Bad-tick detection for multi-day aggregates."""

from collections.abc import Iterable

from cxfeed.core.models import CandleEntry

SPIKE_FACTOR = 10


def is_anomalous(candle: CandleEntry) -> bool:
    """No volume, or a high/low more than an order of magnitude outside the open/close range."""
    if candle.traded == 0:
        return True
    if candle.high > SPIKE_FACTOR * max(candle.open, candle.close):
        return True
    return candle.low < min(candle.open, candle.close) / SPIKE_FACTOR


def drop_anomalies(candles: Iterable[CandleEntry]) -> list[CandleEntry]:
    return [candle for candle in candles if not is_anomalous(candle)]
