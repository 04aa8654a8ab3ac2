"""Tests for the listing merge and the refresh loop."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from cxfeed.core.config import CxFeedConfig
from cxfeed.core.exceptions import DatasetError, MalformedPayloadError, RateLimitError
from cxfeed.core.models import STATISTIC_FIELDS, CandleEntry, PriceRecord, format_timestamp
from cxfeed.core.patterns import Completed, TimedOut, TokenBucket
from cxfeed.core.services import (
    RefreshOrchestrator,
    WindowClassifier,
    build_statistics,
    merge_listing,
    run_refresh,
    staleness_order,
)
from cxfeed.core.services.windows import to_epoch_ms

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)


def listing_entry(material: str, exchange: str = "AI1", **fields) -> dict:
    return {"MaterialTicker": material, "ExchangeCode": exchange, **fields}


def record(material: str, exchange: str = "AI1", age: timedelta | None = None, **fields) -> PriceRecord:
    data = listing_entry(material, exchange, **fields)
    if age is not None:
        data["Timestamp"] = format_timestamp(NOW - age)
    return PriceRecord(data)


def candle(age: timedelta, open=10, close=12, high=13, low=9, traded=100, interval="DAY_ONE") -> CandleEntry:
    return CandleEntry(
        interval=interval,
        date_epoch_ms=to_epoch_ms(NOW - age),
        open=open,
        close=close,
        high=high,
        low=low,
        traded=traded,
    )


class StubGateway:
    """In-memory gateway; ``outcomes`` maps a ticker to candles, a TimedOut or an exception."""

    def __init__(self, listing: list[dict], outcomes: dict | None = None):
        self.listing = listing
        self.outcomes = outcomes or {}
        self.calls: list[str] = []
        self.entered = False

    async def __aenter__(self) -> StubGateway:
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.entered = False

    async def fetch_listing(self) -> list[dict]:
        return self.listing

    async def fetch_history_within(self, full_ticker: str):
        self.calls.append(full_ticker)
        outcome = self.outcomes.get(full_ticker, [])
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, TimedOut):
            return outcome
        return Completed(outcome)


@pytest.fixture
def classifier() -> WindowClassifier:
    return WindowClassifier.at(NOW)


def orchestrator_for(gateway: StubGateway, classifier: WindowClassifier) -> RefreshOrchestrator:
    return RefreshOrchestrator(gateway, classifier, throttle=TokenBucket(refill_interval=0), clock=lambda: NOW)


class TestMergeListing:
    def test_appends_new_and_prunes_unlisted(self):
        records = [record("RAT"), record("OLD")]
        listing = [listing_entry("RAT"), listing_entry("H2O")]

        merge = merge_listing(records, listing)

        assert [r.full_ticker for r in merge.records] == ["RAT.AI1", "H2O.AI1"]
        assert merge.appended == ["H2O.AI1"]
        assert merge.pruned == ["OLD.AI1"]
        assert merge.records[0] is records[0]

    def test_follows_listing_order(self):
        records = [record("A"), record("B"), record("C")]
        listing = [listing_entry("C"), listing_entry("A"), listing_entry("B")]

        merge = merge_listing(records, listing)

        assert [r.full_ticker for r in merge.records] == ["C.AI1", "A.AI1", "B.AI1"]

    def test_same_material_on_different_exchanges(self):
        merge = merge_listing([], [listing_entry("RAT", "AI1"), listing_entry("RAT", "NC1")])

        assert [r.full_ticker for r in merge.records] == ["RAT.AI1", "RAT.NC1"]

    def test_duplicate_listing_entries_keep_first_position(self):
        listing = [listing_entry("RAT", Price=1), listing_entry("H2O"), listing_entry("RAT", Price=2)]

        merge = merge_listing([], listing)

        assert [r.full_ticker for r in merge.records] == ["RAT.AI1", "H2O.AI1"]
        assert merge.latest["RAT.AI1"]["Price"] == 1

    def test_empty_listing_keeps_persisted_records(self):
        records = [record("RAT"), record("H2O")]

        merge = merge_listing(records, [])

        assert merge.records == records
        assert merge.pruned == []


class TestStalenessOrder:
    def test_never_refreshed_first_then_oldest(self):
        records = [
            record("FRESH", age=timedelta(hours=1)),
            record("OLD", age=timedelta(hours=50)),
            record("NEW"),
            record("MID", age=timedelta(hours=30)),
        ]

        ordered = [r.full_ticker for r in staleness_order(records)]

        assert ordered == ["NEW.AI1", "OLD.AI1", "MID.AI1", "FRESH.AI1"]

    def test_ties_keep_input_order(self):
        records = [record("A"), record("B"), record("C")]

        assert [r.full_ticker for r in staleness_order(records)] == ["A.AI1", "B.AI1", "C.AI1"]


class TestBuildStatistics:
    def test_single_daily_candle(self, classifier):
        statistics = build_statistics([candle(timedelta(hours=30))], classifier).to_fields()

        assert statistics["OpenYesterday"] == 10
        assert statistics["CloseYesterday"] == 12
        assert statistics["TradedYesterday"] == 100
        assert statistics["TWAP7D"] == 11.0
        assert statistics["VWAP7D"] == 11.0
        assert statistics["Traded30D"] == 100
        assert statistics["AverageTraded7D"] == 14.29
        assert statistics["AverageTraded30D"] == 3.33

    def test_anomaly_is_yesterday_but_not_in_windows(self, classifier):
        candles = [
            candle(timedelta(hours=30), high=200, traded=50),
            candle(timedelta(days=3), open=20, close=20, high=20, low=20, traded=10),
        ]

        statistics = build_statistics(candles, classifier).to_fields()

        assert statistics["HighYesterday"] == 200
        assert statistics["TradedYesterday"] == 50
        assert statistics["TWAP7D"] == 20.0
        assert statistics["Traded7D"] == 10
        assert statistics["Traded30D"] == 10

    def test_other_intervals_are_ignored(self, classifier):
        candles = [candle(timedelta(hours=30), interval="HOUR_ONE")]

        statistics = build_statistics(candles, classifier).to_fields()

        assert all(value is None for value in statistics.values())

    def test_yesterday_uses_newest_candle_in_band(self, classifier):
        candles = [candle(timedelta(hours=40), open=1), candle(timedelta(hours=26), open=2)]

        assert build_statistics(candles, classifier).open_yesterday == 2

    def test_old_candles_fall_out_of_windows(self, classifier):
        candles = [candle(timedelta(days=10), traded=7), candle(timedelta(days=40), traded=1000)]

        statistics = build_statistics(candles, classifier).to_fields()

        assert statistics["OpenYesterday"] is None
        assert statistics["TWAP7D"] is None
        assert statistics["Traded7D"] is None
        assert statistics["Traded30D"] == 7


class TestRefreshOrchestrator:
    @pytest.mark.asyncio
    async def test_end_to_end_single_ticker(self, classifier):
        records = [record("RAT", age=timedelta(hours=40), Price=9)]
        gateway = StubGateway([listing_entry("RAT", Price=10)], {"RAT.AI1": [candle(timedelta(hours=30))]})

        refreshed, report = await orchestrator_for(gateway, classifier).refresh(records)

        fields = refreshed[0].fields
        assert gateway.calls == ["RAT.AI1"]
        assert report.refreshed == ["RAT.AI1"]
        assert fields["Price"] == 10
        assert fields["Timestamp"] == format_timestamp(NOW)
        assert fields["FullTicker"] == "RAT.AI1"
        assert fields["OpenYesterday"] == 10
        assert fields["CloseYesterday"] == 12
        assert fields["TradedYesterday"] == 100
        assert fields["TWAP7D"] == 11.0

    @pytest.mark.asyncio
    async def test_fresh_records_are_not_fetched(self, classifier):
        records = [record("RAT", age=timedelta(hours=2), Price=1, TWAP7D=5.0)]
        gateway = StubGateway([listing_entry("RAT", Price=2)])

        refreshed, report = await orchestrator_for(gateway, classifier).refresh(records)

        assert gateway.calls == []
        assert report.fresh == ["RAT.AI1"]
        assert refreshed[0].fields["Price"] == 2
        assert refreshed[0].fields["TWAP7D"] == 5.0

    @pytest.mark.asyncio
    async def test_timeout_defers_remaining_records(self, classifier):
        tickers = ["A", "B", "C", "D", "E"]
        records = [record(t, Price=0) for t in tickers]
        listing = [listing_entry(t, Price=1) for t in tickers]
        gateway = StubGateway(
            listing,
            {"A.AI1": [candle(timedelta(hours=30))], "B.AI1": TimedOut(3.0)},
        )

        refreshed, report = await orchestrator_for(gateway, classifier).refresh(records)

        assert gateway.calls == ["A.AI1", "B.AI1"]
        assert report.rate_limited is True
        assert report.refreshed == ["A.AI1"]
        assert report.deferred == ["B.AI1", "C.AI1", "D.AI1", "E.AI1"]
        for deferred in refreshed[1:]:
            assert deferred.fields["Price"] == 1
            assert "Timestamp" not in deferred.fields
            assert all(deferred.fields[name] is None for name in STATISTIC_FIELDS)

    @pytest.mark.asyncio
    async def test_too_many_requests_defers_like_timeout(self, classifier):
        records = [record("A"), record("B")]
        gateway = StubGateway(
            [listing_entry("A"), listing_entry("B")],
            {"A.AI1": RateLimitError("slow down", url="/exchange/cxpc/A.AI1")},
        )

        _, report = await orchestrator_for(gateway, classifier).refresh(records)

        assert gateway.calls == ["A.AI1"]
        assert report.rate_limited is True
        assert report.deferred == ["A.AI1", "B.AI1"]

    @pytest.mark.asyncio
    async def test_rate_limit_does_not_defer_fresh_records(self, classifier):
        records = [record("A"), record("B", age=timedelta(hours=1))]
        gateway = StubGateway([listing_entry("A"), listing_entry("B")], {"A.AI1": TimedOut(3.0)})

        _, report = await orchestrator_for(gateway, classifier).refresh(records)

        assert report.deferred == ["A.AI1"]
        assert report.fresh == ["B.AI1"]

    @pytest.mark.asyncio
    async def test_malformed_history_aborts(self, classifier):
        gateway = StubGateway(
            [listing_entry("RAT")],
            {"RAT.AI1": MalformedPayloadError("not json", url="/exchange/cxpc/RAT.AI1")},
        )

        with pytest.raises(MalformedPayloadError):
            await orchestrator_for(gateway, classifier).refresh([])

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, classifier):
        listing = [listing_entry("RAT", Price=10), listing_entry("H2O", Price=1)]
        gateway = StubGateway(listing, {"RAT.AI1": [candle(timedelta(hours=30))]})
        orchestrator = orchestrator_for(gateway, classifier)

        first, _ = await orchestrator.refresh([])
        snapshot = [r.to_dict() for r in first]
        second, report = await orchestrator.refresh(first)

        assert gateway.calls == ["RAT.AI1", "H2O.AI1"]
        assert [r.to_dict() for r in second] == snapshot
        assert report.fresh == ["RAT.AI1", "H2O.AI1"]

    @pytest.mark.asyncio
    async def test_empty_listing_keeps_records_and_refreshes_stale(self, classifier):
        records = [record("RAT", age=timedelta(hours=30))]
        gateway = StubGateway([], {"RAT.AI1": [candle(timedelta(hours=30))]})

        refreshed, report = await orchestrator_for(gateway, classifier).refresh(records)

        assert [r.full_ticker for r in refreshed] == ["RAT.AI1"]
        assert report.pruned == []
        assert refreshed[0].fields["TWAP7D"] == 11.0

    @pytest.mark.asyncio
    async def test_history_requests_are_throttled(self, classifier):
        sleeps: list[float] = []
        now = [0.0]

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            now[0] += seconds

        throttle = TokenBucket(refill_interval=1.0, clock=lambda: now[0], sleep=fake_sleep)
        gateway = StubGateway([listing_entry("A"), listing_entry("B"), listing_entry("C")])
        orchestrator = RefreshOrchestrator(gateway, classifier, throttle=throttle, clock=lambda: NOW)

        await orchestrator.refresh([])

        assert len(gateway.calls) == 3
        assert sleeps == [pytest.approx(1.0), pytest.approx(1.0)]


class TestRunRefresh:
    @pytest.fixture
    def config(self, tmp_path) -> CxFeedConfig:
        return CxFeedConfig.from_dict(
            {"dataset": {"json_path": str(tmp_path / "all.json"), "csv_path": str(tmp_path / "all.csv")}}
        )

    @pytest.mark.asyncio
    async def test_persists_both_artifacts(self, config, tmp_path):
        (tmp_path / "all.json").write_text(
            json.dumps([record("RAT", age=timedelta(hours=40)).to_dict()]), encoding="utf-8"
        )
        gateway = StubGateway([listing_entry("RAT")], {"RAT.AI1": [candle(timedelta(hours=30))]})

        report = await run_refresh(config, gateway=gateway, now=NOW, throttle=TokenBucket(refill_interval=0))

        assert report.refreshed == ["RAT.AI1"]
        saved = json.loads((tmp_path / "all.json").read_text(encoding="utf-8"))
        assert saved[0]["Timestamp"] == format_timestamp(NOW)
        assert saved[0]["TWAP7D"] == 11.0
        header = (tmp_path / "all.csv").read_text(encoding="utf-8").splitlines()[0].split(",")
        assert "Timestamp" not in header
        assert "TWAP7D" in header

    @pytest.mark.asyncio
    async def test_missing_dataset_is_fatal(self, config):
        gateway = StubGateway([listing_entry("RAT")])

        with pytest.raises(DatasetError):
            await run_refresh(config, gateway=gateway, now=NOW)

        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_fatal_error_writes_nothing(self, config, tmp_path):
        before = json.dumps([record("RAT").to_dict()])
        (tmp_path / "all.json").write_text(before, encoding="utf-8")
        gateway = StubGateway(
            [listing_entry("RAT")],
            {"RAT.AI1": MalformedPayloadError("not json", url="/exchange/cxpc/RAT.AI1")},
        )

        with pytest.raises(MalformedPayloadError):
            await run_refresh(config, gateway=gateway, now=NOW, throttle=TokenBucket(refill_interval=0))

        assert (tmp_path / "all.json").read_text(encoding="utf-8") == before
        assert not (tmp_path / "all.csv").exists()

    @pytest.mark.asyncio
    async def test_uses_given_store(self, config):
        class MemoryStore:
            def __init__(self):
                self.saved = None

            def load(self):
                return [record("RAT", age=timedelta(hours=1))]

            def save(self, records):
                self.saved = [r.to_dict() for r in records]

        store = MemoryStore()
        gateway = StubGateway([listing_entry("RAT", Price=4)])

        report = await run_refresh(config, gateway=gateway, store=store, now=NOW)

        assert report.fresh == ["RAT.AI1"]
        assert store.saved[0]["Price"] == 4
