"""Embedded result-list state extraction.

Listing pages assign the result list to a global, e.g.::

    window.__PRELOADED_STATE__["app-unifiedResultlist"] = {...};

The object literal is located with a brace-balanced, string-aware scan.
A regex cannot match it soundly: values contain nested braces and
escaped quotes.
"""

import json
import logging
from typing import Any

from bs4 import BeautifulSoup

from harvester.core.schemas import ListingState, Pagination
from harvester.platforms.caterer.selectors import STATE_KEY, STATE_MARKER

logger = logging.getLogger(__name__)


def scan_balanced_object(text: str, start: int) -> str | None:
    """Return the ``{...}`` substring opening at ``text[start]``.

    Braces inside string literals are ignored; a backslash inside a string
    escapes exactly one character. Returns None if ``text[start]`` is not
    ``{`` or the object never closes.
    """
    if start >= len(text) or text[start] != "{":
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def find_state_document(script_text: str) -> dict[str, Any] | None:
    """Find and decode the state object assigned after the marker in one script."""
    search_from = 0
    while True:
        marker_at = script_text.find(STATE_MARKER, search_from)
        if marker_at < 0:
            return None
        search_from = marker_at + len(STATE_MARKER)

        eq_at = script_text.find("=", search_from)
        if eq_at < 0:
            return None
        brace_at = eq_at + 1
        while brace_at < len(script_text) and script_text[brace_at].isspace():
            brace_at += 1

        raw = scan_balanced_object(script_text, brace_at)
        if raw is None:
            logger.debug("No balanced object after state marker at %d", marker_at)
            continue
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("State object at %d is not valid JSON: %s", marker_at, e)
            continue
        if isinstance(doc, dict):
            return doc


def extract_state(html: str) -> ListingState | None:
    """Scan inline scripts for the embedded state; None if nothing parses."""
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        text = script.string if script.string is not None else script.get_text()
        if not text or STATE_KEY not in text:
            continue
        doc = find_state_document(text)
        if doc is not None:
            return state_from_document(doc)
    return None


def state_from_document(doc: dict[str, Any]) -> ListingState:
    """Project a raw state document onto items + pagination.

    Entries live under ``searchResults`` on current pages; top-level
    ``items`` / ``pagination`` are accepted as well.
    """
    container = doc.get("searchResults")
    if not isinstance(container, dict):
        container = doc

    items = container.get("items")
    if not isinstance(items, list):
        items = doc.get("items") if isinstance(doc.get("items"), list) else []

    pagination_raw = container.get("pagination")
    if not isinstance(pagination_raw, dict):
        pagination_raw = doc.get("pagination") if isinstance(doc.get("pagination"), dict) else {}

    return ListingState(
        items=[item for item in items if isinstance(item, dict)],
        pagination=Pagination(
            current_page=_as_int(pagination_raw.get("currentPage", pagination_raw.get("page")), 1),
            page_count=_as_int(pagination_raw.get("pageCount"), 0),
        ),
        document=doc,
    )


def _as_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
