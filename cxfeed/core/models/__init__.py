"""Data models for cxfeed."""

from cxfeed.core.models.candle import CandleEntry
from cxfeed.core.models.record import (
    FULL_TICKER_FIELD,
    TIMESTAMP_FIELD,
    PriceRecord,
    format_timestamp,
    full_ticker_of,
    parse_timestamp,
)
from cxfeed.core.models.statistics import STATISTIC_FIELDS, WindowStatistics

__all__ = [
    "CandleEntry",
    "PriceRecord",
    "WindowStatistics",
    "STATISTIC_FIELDS",
    "TIMESTAMP_FIELD",
    "FULL_TICKER_FIELD",
    "format_timestamp",
    "full_ticker_of",
    "parse_timestamp",
]
