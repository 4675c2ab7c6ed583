"""Tests for the browser tier with a mocked browser session."""

import asyncio
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from patchright.async_api import Error as PlaywrightError

from harvester.core.config import BrowserTierConfig
from harvester.core.schemas import ListingRequest, Tier
from harvester.platforms.base import FetchError
from harvester.platforms.caterer.browser_tier import BrowserTier, read_page_state

START = "https://www.caterer.com/jobs/chef"

_DOC = {
    "searchResults": {
        "items": [{"id": "1", "title": "Chef", "url": "/job/chef-job1"}],
        "pagination": {"currentPage": 2, "pageCount": 5},
    },
}


def _make_page(*, status: int | None = 200, doc: Any = None, html: str = "") -> MagicMock:
    page = MagicMock()
    response = None if status is None else MagicMock(status=status)
    page.goto = AsyncMock(return_value=response)
    page.evaluate = AsyncMock(return_value=doc)
    page.content = AsyncMock(return_value=html)
    button = MagicMock()
    button.is_visible = AsyncMock(return_value=False)
    page.locator.return_value.first = button
    return page


class FakeSession:
    """Stands in for BrowserSession; records context options."""

    def __init__(self, page: MagicMock, new_page_error: Exception | None = None) -> None:
        self.page = page
        self.new_page_error = new_page_error
        self.start = AsyncMock()
        self.contexts: list[dict[str, Any]] = []
        self.closed_contexts = 0
        self.close = AsyncMock()

    @asynccontextmanager
    async def new_context(self, **options: Any) -> AsyncIterator[MagicMock]:
        self.contexts.append(options)
        context = MagicMock()
        context.new_page = AsyncMock(return_value=self.page, side_effect=self.new_page_error)
        try:
            yield context
        finally:
            self.closed_contexts += 1


def _tier(page: MagicMock, **config: Any) -> tuple[BrowserTier, FakeSession]:
    session = FakeSession(page)
    tier = BrowserTier(BrowserTierConfig(**config), session=session)  # type: ignore[arg-type]
    return tier, session


def _request() -> ListingRequest:
    return ListingRequest(url=f"{START}?page=2", page=2, tier=Tier.BROWSER, start_url=START)


@pytest.fixture(autouse=True)
def no_settle() -> Iterator[AsyncMock]:
    with patch("harvester.platforms.caterer.browser_tier.random_sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestBrowserTierFetch:
    async def test_reads_state_global(self, no_settle: AsyncMock) -> None:
        tier, session = _tier(_make_page(doc=_DOC))
        outcome = await tier.fetch(_request())
        assert not outcome.blocked
        assert outcome.state is not None
        assert outcome.state.pagination.current_page == 2
        assert outcome.state.items[0]["title"] == "Chef"
        assert session.closed_contexts == 1
        no_settle.assert_awaited_once_with(1.5, 3.0)
        assert tier.tier is Tier.BROWSER

    async def test_waits_for_dom_content(self) -> None:
        page = _make_page(doc=_DOC)
        tier, _ = _tier(page)
        await tier.fetch(_request())
        page.goto.assert_awaited_once_with(f"{START}?page=2", wait_until="domcontentloaded")

    async def test_falls_back_to_rendered_html(self) -> None:
        html = (
            '<script>window.__PRELOADED_STATE__["app-unifiedResultlist"] = '
            '{"items": [{"id": "9", "title": "Porter", "url": "/job/p-job9"}]};</script>'
        )
        tier, _ = _tier(_make_page(doc=None, html=html))
        outcome = await tier.fetch(_request())
        assert outcome.state is not None
        assert outcome.state.items[0]["id"] == "9"

    async def test_no_state_is_blocked(self) -> None:
        tier, session = _tier(_make_page(doc=None, html="<html>captcha</html>"))
        outcome = await tier.fetch(_request())
        assert outcome.blocked
        assert session.closed_contexts == 1

    async def test_context_gets_fingerprint(self) -> None:
        tier, session = _tier(_make_page(doc=_DOC))
        await tier.fetch(_request())
        options = session.contexts[0]
        assert options["user_agent"].startswith("Mozilla/5.0")
        assert set(options["viewport"]) == {"width", "height"}
        assert options["proxy"] is None

    async def test_proxy_per_context(self) -> None:
        proxy = MagicMock()
        proxy.new_url.return_value = "http://user:pw@proxy.example:8000"
        session = FakeSession(_make_page(doc=_DOC))
        tier = BrowserTier(BrowserTierConfig(), proxy=proxy, session=session)  # type: ignore[arg-type]
        await tier.fetch(_request())
        assert session.contexts[0]["proxy"] == {
            "server": "http://proxy.example:8000", "username": "user", "password": "pw",
        }

    async def test_error_status_raises(self) -> None:
        tier, session = _tier(_make_page(status=500, doc=_DOC))
        with pytest.raises(FetchError, match="500"):
            await tier.fetch(_request())
        assert session.closed_contexts == 1

    async def test_navigation_error_raises(self) -> None:
        page = _make_page(doc=_DOC)
        page.goto.side_effect = PlaywrightError("net::ERR_CONNECTION_RESET")
        tier, session = _tier(page)
        with pytest.raises(FetchError, match="Navigation failed"):
            await tier.fetch(_request())
        assert session.closed_contexts == 1

    async def test_closed_context_raises_fetch_error(self) -> None:
        session = FakeSession(
            _make_page(doc=_DOC),
            new_page_error=PlaywrightError("Target page, context or browser has been closed"),
        )
        tier = BrowserTier(BrowserTierConfig(), session=session)  # type: ignore[arg-type]
        with pytest.raises(FetchError, match="Browser context failed"):
            await tier.fetch(_request())
        assert session.closed_contexts == 1

    async def test_launch_failure_propagates(self) -> None:
        tier, session = _tier(_make_page(doc=_DOC))
        session.start.side_effect = PlaywrightError("Executable doesn't exist")
        with pytest.raises(PlaywrightError):
            await tier.fetch(_request())
        assert session.contexts == []

    async def test_missing_response_tolerated(self) -> None:
        tier, _ = _tier(_make_page(status=None, doc=_DOC))
        outcome = await tier.fetch(_request())
        assert outcome.status is None
        assert outcome.state is not None

    async def test_request_timeout(self) -> None:
        page = _make_page(doc=_DOC)

        async def _hang(*_: Any, **__: Any) -> None:
            await asyncio.sleep(10)

        page.goto.side_effect = _hang
        tier, session = _tier(page, request_timeout_s=0.05)
        with pytest.raises(FetchError, match="timed out"):
            await tier.fetch(_request())
        assert session.closed_contexts == 1

    async def test_dismisses_consent(self) -> None:
        page = _make_page(doc=_DOC)
        page.locator.return_value.first.is_visible = AsyncMock(return_value=True)
        page.locator.return_value.first.click = AsyncMock()
        tier, _ = _tier(page)
        await tier.fetch(_request())
        page.locator.return_value.first.click.assert_awaited_once()

    async def test_aclose_closes_session(self) -> None:
        tier, session = _tier(_make_page())
        await tier.aclose()
        session.close.assert_awaited_once()


class TestReadPageState:
    async def test_non_dict_global_uses_html(self) -> None:
        page = _make_page(doc="weird", html="")
        assert await read_page_state(page) is None
        page.content.assert_awaited_once()
