"""Caterer.com URL builder and pagination helpers.

Pure functions, zero network dependency.
"""

import logging
import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from harvester.core.schemas import Pagination
from harvester.platforms.caterer.selectors import SITE_BASE

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9-]")


def slugify(text: str) -> str:
    """Lowercase, trim, whitespace runs to '-', drop anything outside [a-z0-9-]."""
    slug = _WHITESPACE.sub("-", (text or "").strip().lower())
    return _NON_SLUG.sub("", slug)


def canonical_start(keyword: str, location: str) -> str:
    """Build the page-1 search URL for a keyword/location pair.

    Shapes: /jobs/{kw}/in-{loc}, /jobs/{kw}, /jobs/in-{loc}, /jobs
    """
    kw = slugify(keyword)
    loc = slugify(location)
    if kw and loc:
        path = f"/jobs/{kw}/in-{loc}"
    elif kw:
        path = f"/jobs/{kw}"
    elif loc:
        path = f"/jobs/in-{loc}"
    else:
        path = "/jobs"
    return f"{SITE_BASE}{path}"


def paginate(start_url: str, page: int) -> str:
    """Set or replace the ``page`` query parameter.

    Page 1 is rendered without the parameter so it matches the start URL.
    Other query parameters keep their order.
    """
    parsed = urlparse(start_url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != "page"]
    if page > 1:
        params.append(("page", str(page)))
    return urlunparse(parsed._replace(query=urlencode(params)))


def to_absolute(href: object, base: str = SITE_BASE) -> str | None:
    """Resolve ``href`` against ``base``. Returns None on anything malformed."""
    if not isinstance(href, str) or not href.strip():
        return None
    try:
        url = urljoin(base, href.strip())
        parsed = urlparse(url)
    except ValueError:
        logger.debug("Malformed href: %r", href)
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return url


def has_next_page(
    page: int,
    pagination: Pagination,
    *,
    saved: int,
    desired: int,
    max_pages: int,
) -> bool:
    """True if page ``page + 1`` should be requested."""
    return saved < desired and page < max_pages and page < pagination.page_count
