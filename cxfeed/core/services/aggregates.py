"""Trailing-window statistics over candle sets.

A window is a list of :class:`CandleEntry` or ``None`` when no candle
qualified. Every aggregate of an absent window is ``None``; none of them
ever returns ``NaN``.
"""

from __future__ import annotations

from collections.abc import Sequence
import math
from decimal import ROUND_HALF_UP, Decimal

from cxfeed.core.models import CandleEntry, WindowStatistics

Window = Sequence[CandleEntry] | None

_CENTS = Decimal("0.01")


def twap(window: Window) -> float | None:
    """Arithmetic mean of the typical price of each candle."""
    if not window:
        return None
    return sum(candle.typical_price for candle in window) / len(window)


def vwap(window: Window) -> float | None:
    """Typical price weighted by traded volume; ``None`` when nothing traded."""
    if window is None:
        return None
    volume = sum(candle.traded for candle in window)
    if volume <= 0:
        return None
    return sum(candle.traded * candle.typical_price for candle in window) / volume


def total_traded(window: Window) -> int | float | None:
    if window is None:
        return None
    return sum(candle.traded for candle in window)


def average_traded(window: Window, period_days: int) -> float | None:
    """Traded volume divided by the nominal period length, not by the candle count."""
    if window is None:
        return None
    return sum(candle.traded / period_days for candle in window)


def round_stat(value: int | float | None) -> int | float | None:
    """Round half-up to two decimals; ``None``, zero and integers pass through."""
    if not value or isinstance(value, int) or not math.isfinite(value):
        return value
    return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def compute_statistics(
    yesterday: CandleEntry | None,
    last_7d: Window,
    last_30d: Window,
) -> WindowStatistics:
    """Assemble every derived field; yesterday's candle is passed through unrounded."""
    return WindowStatistics(
        open_yesterday=yesterday.open if yesterday else None,
        close_yesterday=yesterday.close if yesterday else None,
        high_yesterday=yesterday.high if yesterday else None,
        low_yesterday=yesterday.low if yesterday else None,
        traded_yesterday=yesterday.traded if yesterday else None,
        twap_7d=round_stat(twap(last_7d)),
        vwap_7d=round_stat(vwap(last_7d)),
        traded_7d=round_stat(total_traded(last_7d)),
        average_traded_7d=round_stat(average_traded(last_7d, 7)),
        twap_30d=round_stat(twap(last_30d)),
        vwap_30d=round_stat(vwap(last_30d)),
        traded_30d=round_stat(total_traded(last_30d)),
        average_traded_30d=round_stat(average_traded(last_30d, 30)),
    )
