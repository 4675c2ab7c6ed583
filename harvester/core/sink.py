"""Append-only local dataset plus a small key-value store.

Layout under the storage directory::

    datasets/default/items.jsonl     one JSON object per emitted record
    key_value_stores/default/<KEY>.json

The dataset is reset when the sink opens (runs are independent); within a run
it is append-only. A failed append is fatal (SinkError).
"""

import json
import logging
from pathlib import Path
from types import TracebackType
from typing import IO, Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SinkError(RuntimeError):
    """Output could not be written; the run cannot continue."""


class DatasetSink:
    """Async context manager owning the dataset file handle.

    Usage::

        async with DatasetSink("storage") as sink:
            await sink.push_data(record)
            await sink.set_value("STATS", stats)
    """

    def __init__(self, storage_dir: str | Path) -> None:
        self._root = Path(storage_dir)
        self._dataset_path = self._root / "datasets" / "default" / "items.jsonl"
        self._kv_dir = self._root / "key_value_stores" / "default"
        self._fh: IO[str] | None = None
        self.count = 0

    @property
    def dataset_path(self) -> Path:
        return self._dataset_path

    async def __aenter__(self) -> "DatasetSink":
        try:
            self._dataset_path.parent.mkdir(parents=True, exist_ok=True)
            self._kv_dir.mkdir(parents=True, exist_ok=True)
            self._fh = self._dataset_path.open("w", encoding="utf-8")
        except OSError as e:
            msg = f"Cannot open dataset at {self._dataset_path}: {e}"
            raise SinkError(msg) from e
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    async def push_data(self, item: BaseModel | dict[str, Any]) -> None:
        """Append one record and flush it to disk."""
        if self._fh is None:
            msg = "DatasetSink not entered, use 'async with'"
            raise SinkError(msg)
        payload = item.model_dump(mode="json") if isinstance(item, BaseModel) else item
        try:
            self._fh.write(json.dumps(payload, ensure_ascii=False) + "\n")
            self._fh.flush()
        except (OSError, TypeError, ValueError) as e:
            msg = f"Failed to append record to {self._dataset_path}: {e}"
            raise SinkError(msg) from e
        self.count += 1

    async def set_value(self, key: str, value: BaseModel | dict[str, Any]) -> Path:
        """Write (or replace) a JSON value in the key-value store."""
        if isinstance(value, BaseModel):
            payload = value.model_dump(mode="json", by_alias=True)
        else:
            payload = value
        path = self._kv_dir / f"{key}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            msg = f"Failed to write key-value record {key}: {e}"
            raise SinkError(msg) from e
        logger.debug("Wrote key-value record %s to %s", key, path)
        return path


def read_dataset(path: str | Path) -> list[dict[str, Any]]:
    """Load every record from a dataset file."""
    path = Path(path)
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
