"""JSON dataset persistence and the derived tabular export."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from cxfeed.core.exceptions import DatasetError
from cxfeed.core.logging import logger
from cxfeed.core.models import TIMESTAMP_FIELD, PriceRecord
from cxfeed.core.services.aggregates import round_stat


class DatasetStore:
    """Whole-file persistence of the record set.

    The JSON file is the source of truth; the CSV export is rewritten from it
    on every save and never read back.
    """

    def __init__(self, json_path: str | Path, csv_path: str | Path):
        self.json_path = Path(json_path)
        self.csv_path = Path(csv_path)

    def load(self) -> list[PriceRecord]:
        """Read the persisted records; any problem is fatal."""
        try:
            text = self.json_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DatasetError(f"Unable to read dataset: {exc}", path=str(self.json_path)) from exc
        try:
            payload = json.loads(text, parse_constant=_reject_constant)
        except ValueError as exc:
            raise DatasetError(f"Dataset is not valid JSON: {exc}", path=str(self.json_path)) from exc
        if not isinstance(payload, list):
            raise DatasetError("Dataset must be a JSON array of records", path=str(self.json_path))

        records: list[PriceRecord] = []
        for index, entry in enumerate(payload):
            if not isinstance(entry, dict):
                raise DatasetError(
                    "Dataset entry is not an object",
                    path=str(self.json_path),
                    details={"index": index},
                )
            records.append(PriceRecord(fields=entry))
        logger.info("Loaded dataset", path=str(self.json_path), records=len(records))
        return records

    def save(self, records: Sequence[PriceRecord]) -> None:
        """Rewrite both artifacts."""
        rows = [record.to_dict() for record in records]
        try:
            json_text, csv_text = to_json(rows), to_csv(rows)
        except ValueError as exc:
            raise DatasetError(f"Dataset cannot be serialized: {exc}", path=str(self.json_path)) from exc
        _atomic_write(self.json_path, json_text)
        _atomic_write(self.csv_path, csv_text)
        logger.info(
            "Saved dataset",
            path=str(self.json_path),
            export=str(self.csv_path),
            records=len(rows),
        )


def to_json(rows: Sequence[dict[str, Any]]) -> str:
    return json.dumps(list(rows), indent=2, ensure_ascii=False, allow_nan=False)


def to_csv(rows: Sequence[dict[str, Any]]) -> str:
    """Flat export: first record's keys minus ``Timestamp``, JSON-encoded cells, null as empty."""
    if not rows:
        return ""
    columns = [key for key in rows[0] if key != TIMESTAMP_FIELD]
    lines = [",".join(columns)]
    for row in rows:
        lines.append(",".join(_format_cell(row.get(column)) for column in columns))
    return "\n".join(lines)


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        value = round_stat(value)
        if value.is_integer():
            value = int(value)
    return json.dumps(value, ensure_ascii=False, allow_nan=False)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-standard constant {token!r}")


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(temp_name, path)
    except OSError as exc:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise DatasetError(f"Unable to write {path}: {exc}", path=str(path)) from exc
