"""Persisted price record."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from cxfeed.core.models.statistics import STATISTIC_FIELDS, WindowStatistics

TIMESTAMP_FIELD = "Timestamp"
FULL_TICKER_FIELD = "FullTicker"


def full_ticker_of(entry: Mapping[str, Any]) -> str:
    """``MaterialTicker.ExchangeCode`` for a listing entry or record."""
    return f"{entry.get('MaterialTicker')}.{entry.get('ExchangeCode')}"


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored ``Timestamp``; empty or unparsable values mean never refreshed."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class PriceRecord:
    """One (MaterialTicker, ExchangeCode) entry of the dataset.

    ``fields`` keeps every key in insertion order: whatever was persisted,
    then listing keys seen for the first time, then the refresh metadata and
    derived statistics.
    """

    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_listing(cls, entry: Mapping[str, Any]) -> PriceRecord:
        """New record as a copy of a listing entry."""
        return cls(fields=dict(entry))

    @property
    def full_ticker(self) -> str:
        return full_ticker_of(self.fields)

    @property
    def refreshed_at(self) -> datetime | None:
        return parse_timestamp(self.fields.get(TIMESTAMP_FIELD))

    def overlay(self, entry: Mapping[str, Any]) -> None:
        """Copy the latest listing fields over the record."""
        self.fields.update(entry)

    def apply_statistics(self, statistics: WindowStatistics, refreshed_at: datetime) -> None:
        """Stamp the refresh instant and replace every derived field."""
        self.fields[TIMESTAMP_FIELD] = format_timestamp(refreshed_at)
        self.fields[FULL_TICKER_FIELD] = self.full_ticker
        self.fields.update(statistics.to_fields())

    def ensure_statistic_fields(self) -> None:
        """Give never-computed derived fields an explicit null."""
        self.fields.setdefault(FULL_TICKER_FIELD, self.full_ticker)
        for name in STATISTIC_FIELDS:
            self.fields.setdefault(name, None)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.fields)
