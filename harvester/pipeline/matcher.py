"""Acceptance gates applied to each shaped record before emission.

Gate order:
  1. Limit:          stop once the desired count is saved
  2. Deduplication:  by absolute job URL, first occurrence wins
  3. Recency:        posted date within the window; unreadable dates pass
"""

import logging
from datetime import datetime
from enum import Enum

from harvester.core.config import RecencyWindow
from harvester.core.schemas import JobRecord
from harvester.pipeline.dates import keep_by_recency

logger = logging.getLogger(__name__)


class Rejection(str, Enum):
    """Why a record was not emitted."""

    LIMIT = "limit"
    DUPLICATE = "duplicate"
    TOO_OLD = "too_old"


class DeduplicationFilter:
    """Tracks emitted URLs for the whole run.

    ``mark`` is called only at emission and undone with ``discard`` if the
    append fails, so every seen URL reached the dataset exactly once.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def __contains__(self, url: object) -> bool:
        return url in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def is_duplicate(self, record: JobRecord) -> bool:
        return record.url in self._seen

    def mark(self, record: JobRecord) -> None:
        self._seen.add(record.url)

    def discard(self, record: JobRecord) -> None:
        """Forget a URL whose emission failed."""
        self._seen.discard(record.url)


class RecencyFilter:
    """Keep records posted within the window (inclusive boundary)."""

    def __init__(self, window: RecencyWindow | None) -> None:
        self._window = window

    def __call__(self, record: JobRecord, now: datetime | None = None) -> bool:
        keep = keep_by_recency(record.date_posted, self._window, now=now)
        if not keep:
            logger.debug("RecencyFilter: dropped %s (posted %s)", record.url, record.date_posted)
        return keep


def check_record(
    record: JobRecord,
    *,
    saved: int,
    desired: int,
    dedup: DeduplicationFilter,
    recency: RecencyFilter,
    now: datetime | None = None,
) -> Rejection | None:
    """Run the gates in order; None means the record may be emitted."""
    if saved >= desired:
        return Rejection.LIMIT
    if dedup.is_duplicate(record):
        return Rejection.DUPLICATE
    if not recency(record, now):
        return Rejection.TOO_OLD
    return None
