"""Dataset storage."""

from cxfeed.core.storage.dataset import DatasetStore, to_csv, to_json

__all__ = ["DatasetStore", "to_csv", "to_json"]
