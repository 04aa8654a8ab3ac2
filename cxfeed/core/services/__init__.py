"""Refresh services."""

from cxfeed.core.services.aggregates import (
    average_traded,
    compute_statistics,
    round_stat,
    total_traded,
    twap,
    vwap,
)
from cxfeed.core.services.anomaly import drop_anomalies, is_anomalous
from cxfeed.core.services.refresh import (
    RefreshOrchestrator,
    RefreshReport,
    build_statistics,
    merge_listing,
    run_refresh,
    staleness_order,
)
from cxfeed.core.services.windows import DAY_MS, WindowClassifier

__all__ = [
    "DAY_MS",
    "RefreshOrchestrator",
    "RefreshReport",
    "WindowClassifier",
    "average_traded",
    "build_statistics",
    "compute_statistics",
    "drop_anomalies",
    "is_anomalous",
    "merge_listing",
    "round_stat",
    "run_refresh",
    "staleness_order",
    "total_traded",
    "twap",
    "vwap",
]
