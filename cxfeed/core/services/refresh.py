"""The stale-item refresh loop.

One pass merges the upstream listing into the persisted records, walks them
oldest-refreshed-first and recomputes the window statistics of every stale
record until the upstream starts rate limiting. From then on the remaining
records only receive the listing overlay. Integrity failures propagate and
abort the run before anything is written.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from cxfeed.core.config import CxFeedConfig
from cxfeed.core.exceptions import RateLimitError
from cxfeed.core.logging import log_context, logger
from cxfeed.core.models import CandleEntry, PriceRecord, WindowStatistics, full_ticker_of
from cxfeed.core.patterns import DeadlineResult, TimedOut, TokenBucket
from cxfeed.core.services.aggregates import compute_statistics
from cxfeed.core.services.anomaly import drop_anomalies
from cxfeed.core.services.windows import WindowClassifier

_NEVER = datetime.min.replace(tzinfo=UTC)


class MarketDataGateway(Protocol):
    async def fetch_listing(self) -> list[dict[str, Any]]: ...

    async def fetch_history_within(self, full_ticker: str) -> DeadlineResult[list[CandleEntry]]: ...


@dataclass
class RefreshReport:
    """Outcome of one refresh pass, tickers grouped by what happened to them."""

    refreshed: list[str] = field(default_factory=list)
    fresh: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    appended: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    rate_limited: bool = False
    total: int = 0

    def summary(self) -> dict[str, int | bool]:
        return {
            "total": self.total,
            "refreshed": len(self.refreshed),
            "fresh": len(self.fresh),
            "deferred": len(self.deferred),
            "appended": len(self.appended),
            "pruned": len(self.pruned),
            "rate_limited": self.rate_limited,
        }


@dataclass
class MergeResult:
    records: list[PriceRecord]
    latest: dict[str, Mapping[str, Any]]
    appended: list[str]
    pruned: list[str]


def merge_listing(records: Sequence[PriceRecord], listing: Sequence[Mapping[str, Any]]) -> MergeResult:
    """Listing-driven merge: listing order, existing records reused, unlisted tickers dropped.

    An empty listing leaves the persisted records untouched.
    """
    if not listing:
        return MergeResult(list(records), {}, [], [])

    existing: dict[str, PriceRecord] = {}
    for record in records:
        existing.setdefault(record.full_ticker, record)

    merged: list[PriceRecord] = []
    latest: dict[str, Mapping[str, Any]] = {}
    appended: list[str] = []
    for entry in listing:
        ticker = full_ticker_of(entry)
        if ticker in latest:
            continue
        latest[ticker] = entry
        record = existing.get(ticker)
        if record is None:
            record = PriceRecord.from_listing(entry)
            appended.append(ticker)
        merged.append(record)

    pruned = [ticker for ticker in existing if ticker not in latest]
    return MergeResult(merged, latest, appended, pruned)


def staleness_order(records: Iterable[PriceRecord]) -> list[PriceRecord]:
    """Oldest refresh first; never-refreshed records lead. Ties keep listing order."""
    return sorted(records, key=lambda record: record.refreshed_at or _NEVER)


def group_by_interval(candles: Iterable[CandleEntry]) -> dict[str, list[CandleEntry]]:
    """Candles per interval label, newest first."""
    groups: dict[str, list[CandleEntry]] = defaultdict(list)
    for candle in candles:
        groups[candle.interval].append(candle)
    for values in groups.values():
        values.sort(key=lambda candle: candle.date_epoch_ms, reverse=True)
    return dict(groups)


def build_statistics(
    candles: Iterable[CandleEntry],
    classifier: WindowClassifier,
    primary_interval: str = "DAY_ONE",
) -> WindowStatistics:
    """Yesterday's candle plus the filtered 7 and 30 day windows of the primary interval."""
    daily = group_by_interval(candles).get(primary_interval, [])

    yesterday = next((c for c in daily if classifier.is_yesterday(c.date_epoch_ms)), None)
    last_30d = drop_anomalies(c for c in daily if classifier.is_last_30d(c.date_epoch_ms))
    last_7d = [c for c in last_30d if classifier.is_last_7d(c.date_epoch_ms)]

    return compute_statistics(yesterday, last_7d or None, last_30d or None)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RefreshOrchestrator:
    """Runs one refresh pass over a record set."""

    def __init__(
        self,
        gateway: MarketDataGateway,
        classifier: WindowClassifier,
        throttle: TokenBucket | None = None,
        clock: Callable[[], datetime] = _utcnow,
        primary_interval: str = "DAY_ONE",
    ):
        self.gateway = gateway
        self.classifier = classifier
        self.throttle = throttle or TokenBucket()
        self.clock = clock
        self.primary_interval = primary_interval

    async def refresh(self, records: Sequence[PriceRecord]) -> tuple[list[PriceRecord], RefreshReport]:
        """Refresh ``records`` in place and return them in listing order."""
        listing = await self.gateway.fetch_listing()
        merge = merge_listing(records, listing)
        report = RefreshReport(appended=merge.appended, pruned=merge.pruned, total=len(merge.records))

        if not listing:
            logger.warning("Upstream listing is empty; keeping persisted records", records=len(records))
        else:
            logger.info(
                "Merged listing",
                listed=len(merge.latest),
                appended=len(merge.appended),
                pruned=len(merge.pruned),
            )

        for record in staleness_order(merge.records):
            await self._process(record, merge.latest, report)

        for record in merge.records:
            record.ensure_statistic_fields()

        logger.info("Refresh pass finished", **report.summary())
        return merge.records, report

    async def _process(
        self,
        record: PriceRecord,
        latest: Mapping[str, Mapping[str, Any]],
        report: RefreshReport,
    ) -> None:
        ticker = record.full_ticker
        log = logger.bind(ticker=ticker)

        entry = latest.get(ticker)
        if entry is not None:
            record.overlay(entry)

        if not self.classifier.is_stale(record.refreshed_at):
            log.debug("OK")
            report.fresh.append(ticker)
            return
        if report.rate_limited:
            log.debug("Deferred, upstream is rate limiting")
            report.deferred.append(ticker)
            return

        log.info("UPDATING")
        await self.throttle.acquire()
        try:
            result = await self.gateway.fetch_history_within(ticker)
        except RateLimitError as exc:
            log.bind(error_code=exc.error_code).warning("RATE LIMITED", retry_after=exc.retry_after)
            report.rate_limited = True
            report.deferred.append(ticker)
            return

        if isinstance(result, TimedOut):
            log.bind(error_code="RATE_LIMIT_ERROR").warning("RATE LIMITED", timeout=result.after)
            report.rate_limited = True
            report.deferred.append(ticker)
            return

        statistics = build_statistics(result.value, self.classifier, self.primary_interval)
        record.apply_statistics(statistics, self.clock())
        log.info("Refreshed", candles=len(result.value))
        report.refreshed.append(ticker)


async def run_refresh(
    config: CxFeedConfig,
    *,
    gateway: Any = None,
    store: Any = None,
    now: datetime | None = None,
    throttle: TokenBucket | None = None,
) -> RefreshReport:
    """Load, refresh and persist the dataset described by ``config``.

    ``now`` is the reference instant for every window and staleness decision
    of the run; it is captured once when omitted.
    """
    from cxfeed.core.providers import FioGateway
    from cxfeed.core.storage import DatasetStore

    reference = now or _utcnow()
    store = store or DatasetStore(config.dataset.json_path, config.dataset.csv_path)
    gateway = gateway or FioGateway(config.upstream)
    throttle = throttle or TokenBucket(config.upstream.throttle_interval)

    with log_context(run="refresh", reference=reference.isoformat()):
        records = store.load()
        classifier = WindowClassifier.at(reference, config.refresh.stale_after_hours)
        orchestrator = RefreshOrchestrator(
            gateway,
            classifier,
            throttle=throttle,
            clock=(lambda: now) if now else _utcnow,
            primary_interval=config.refresh.primary_interval,
        )
        async with gateway:
            refreshed, report = await orchestrator.refresh(records)
        store.save(refreshed)
        logger.success("Prices updated successfully", records=len(refreshed))
    return report
