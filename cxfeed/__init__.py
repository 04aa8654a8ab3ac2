"""cxfeed - commodity exchange price snapshot refresher.

Keeps a flat JSON/CSV price feed current by merging the FIO exchange listing
and recomputing 7 and 30 day trailing statistics for stale tickers.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
