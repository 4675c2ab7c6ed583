"""Caterer.com record shaping: raw state entries -> JobRecord.

Rules:
  - Every field reads a fallback tuple of keys; first non-empty wins.
  - url and title are required; entries without them are dropped.
  - Missing optional fields become None (never crash).
  - Shaping is a pure function of (entry, now).
"""

import json
import logging
import re
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from harvester.core.schemas import SOURCE, JobRecord
from harvester.pipeline.dates import normalize
from harvester.platforms.caterer.searcher import to_absolute
from harvester.platforms.caterer.selectors import JSON_LD_SELECTOR

logger = logging.getLogger(__name__)

# --- Field fallbacks, in priority order ---
TITLE_KEYS: tuple[str, ...] = ("title", "jobTitle")
COMPANY_KEYS: tuple[str, ...] = ("companyName", "company", "recruiterName", "companyCard.name")
LOCATION_KEYS: tuple[str, ...] = ("location", "jobLocation", "locationLabel")
SALARY_KEYS: tuple[str, ...] = ("salary", "salaryDescription", "salaryLabel")
JOB_TYPE_KEYS: tuple[str, ...] = ("contractType", "employmentType", "workType")
DATE_KEYS: tuple[str, ...] = ("datePosted", "postedDate", "listingDate")
DESCRIPTION_KEYS: tuple[str, ...] = ("textSnippet", "description", "snippet")
ID_KEYS: tuple[str, ...] = ("id", "jobId")

_TAG = re.compile(r"<[^>]*>")
_WS = re.compile(r"\s+")
_ENTITIES: tuple[tuple[str, str], ...] = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


def clean_html(fragment: Any) -> str | None:
    """Strip tags, decode the minimal entity set, collapse whitespace."""
    if not isinstance(fragment, str):
        return None
    text = _TAG.sub(" ", fragment)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    text = _WS.sub(" ", text).strip()
    return text or None


def shape_entry(entry: dict[str, Any], now: datetime | None = None) -> JobRecord | None:
    """Map one raw state entry to a JobRecord, or None if url/title missing."""
    title = _text(first_present(entry, TITLE_KEYS))
    url = to_absolute(entry.get("url"))
    if not title or url is None:
        logger.debug("Entry missing title or url, skipping: %r", entry.get("id"))
        return None

    return JobRecord(
        source=SOURCE,
        title=title,
        company=_text(first_present(entry, COMPANY_KEYS)),
        location=_text(first_present(entry, LOCATION_KEYS)),
        salary=_text(first_present(entry, SALARY_KEYS)),
        job_type=_text(first_present(entry, JOB_TYPE_KEYS)),
        date_posted=normalize(first_present(entry, DATE_KEYS), now=now),
        description=clean_html(_text(first_present(entry, DESCRIPTION_KEYS))),
        url=url,
        job_id=_text(first_present(entry, ID_KEYS)),
    )


def shape_entries(entries: list[dict[str, Any]], now: datetime | None = None) -> list[JobRecord]:
    """Shape a page of entries, preserving source order."""
    records: list[JobRecord] = []
    for entry in entries:
        record = shape_entry(entry, now=now)
        if record is not None:
            records.append(record)
    return records


def first_present(entry: dict[str, Any], keys: tuple[str, ...]) -> Any:
    """First non-empty scalar among ``keys``. Dotted keys walk nested dicts."""
    for key in keys:
        value = _lookup(entry, key)
        if value is None or isinstance(value, dict | list):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_job_posting(html: str) -> dict[str, Any]:
    """Read the JobPosting JSON-LD block of a detail page.

    Returns only the fields that were present, mapped to JobRecord names.
    Malformed JSON-LD blocks are skipped.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    result: dict[str, Any] = {}
    for script in soup.select(JSON_LD_SELECTOR):
        try:
            data = json.loads(script.string or script.get_text() or "{}")
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")
            continue
        entries = data if isinstance(data, list) else [data]
        for item in entries:
            if not isinstance(item, dict) or item.get("@type") != "JobPosting":
                continue
            _set_once(result, "title", _text(item.get("title")))
            _set_once(result, "company", _text(_lookup(item, "hiringOrganization.name")))
            _set_once(result, "location", _text(_lookup(item, "jobLocation.address.addressLocality")))
            _set_once(result, "salary", _text(_lookup(item, "baseSalary.value.value")))
            job_type = item.get("employmentType")
            if isinstance(job_type, list):
                job_type = ", ".join(str(t) for t in job_type if t)
            _set_once(result, "job_type", _text(job_type))
            _set_once(result, "description", clean_html(item.get("description")))
            _set_once(result, "date_posted", normalize(item.get("datePosted")))
    return result


# --- Private helpers ---


def _lookup(data: dict[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, bool | dict | list):
        return None
    text = str(value).strip()
    return text or None


def _set_once(result: dict[str, Any], key: str, value: Any) -> None:
    if value is not None and key not in result:
        result[key] = value
