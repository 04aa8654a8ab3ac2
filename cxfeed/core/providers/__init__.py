"""Upstream market-data providers."""

from cxfeed.core.providers.fio import HISTORY_PATH, LISTING_PATH, FioGateway

__all__ = ["FioGateway", "HISTORY_PATH", "LISTING_PATH"]
