"""Posted-date parsing and the recency predicate.

Accepted inputs:
  - JSON numbers              epoch milliseconds
  - just / today / new / featured   now
  - yesterday                 now - 1 day
  - "<N> <unit>(s) ago"       now - N * unit (month is a flat 30 days)
  - anything dateutil parses  that instant (naive values are taken as UTC)

Unparseable values are kept by the recency predicate (fail-open).
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser

from harvester.core.config import RecencyWindow

logger = logging.getLogger(__name__)

UNIT_SECONDS: dict[str, int] = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
}

_NOW_TOKENS = re.compile(r"\b(just|today|new|featured)\b", re.IGNORECASE)
_YESTERDAY = re.compile(r"\byesterday\b", re.IGNORECASE)
_RELATIVE = re.compile(
    r"(\d+)\+?\s*(minute|hour|day|week|month)s?\s+ago", re.IGNORECASE,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse(value: Any, now: datetime | None = None) -> datetime | None:
    """Parse a posted-date value into an aware UTC datetime, or None."""
    if value is None or isinstance(value, bool):
        return None
    now = now or utc_now()

    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug("Epoch value out of range: %r", value)
            return None

    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    match = _RELATIVE.search(text)
    if match:
        amount = int(match.group(1))
        return now - timedelta(seconds=amount * UNIT_SECONDS[match.group(2).lower()])
    if _YESTERDAY.search(text):
        return now - timedelta(days=1)
    if _NOW_TOKENS.search(text):
        return now

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """ISO-8601 in UTC with a ``Z`` suffix; sub-second precision is kept."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize(value: Any, now: datetime | None = None) -> str | None:
    """ISO rendering of a parseable value, else the original string.

    Empty input gives None. Non-string unparseable input is stringified.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    parsed = parse(value, now=now)
    if parsed is not None:
        return to_iso(parsed)
    return value.strip() if isinstance(value, str) else str(value)


def keep_by_recency(
    value: Any,
    window: RecencyWindow | None,
    now: datetime | None = None,
) -> bool:
    """Return True if a record with this posted date passes the window.

    The boundary is inclusive, and unreadable dates are always kept.
    """
    if window is None or window is RecencyWindow.ANY:
        return True
    now = now or utc_now()
    parsed = parse(value, now=now)
    if parsed is None:
        return True
    return (now - parsed).total_seconds() <= window.seconds
