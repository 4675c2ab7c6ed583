"""Escalated browser tier: render the listing page and read its state global.

Each request gets its own context (fresh fingerprint and proxy session),
closed on every exit path. The state is read from the page global first;
when that is missing the rendered HTML goes through the script scanner.
"""

import asyncio
import logging
import random
from typing import Any

from patchright.async_api import Error as PlaywrightError

from harvester.browser.actions import dismiss_popups, random_sleep
from harvester.browser.session import BrowserSession
from harvester.core.config import BrowserTierConfig
from harvester.core.proxy import ProxyProvisioner, to_playwright_proxy
from harvester.core.schemas import FetchOutcome, ListingRequest, ListingState, Tier
from harvester.platforms.base import FetchError, FetchTier
from harvester.platforms.caterer.selectors import (
    CONSENT_BUTTON_SELECTORS,
    FINGERPRINTS,
    STATE_GLOBAL,
    STATE_KEY,
)
from harvester.platforms.caterer.state import extract_state, state_from_document

logger = logging.getLogger(__name__)

READ_STATE_JS = """
([globalName, key]) => {
    const root = window[globalName];
    return root && typeof root === 'object' && root[key] ? root[key] : null;
}
"""


class BrowserTier(FetchTier):
    """Listing fetcher over a headless patchright browser.

    The browser is launched on the first request, so runs that never
    escalate never start one.
    """

    def __init__(
        self,
        config: BrowserTierConfig,
        proxy: ProxyProvisioner | None = None,
        session: BrowserSession | None = None,
    ) -> None:
        self._config = config
        self._proxy = proxy
        self._session = session or BrowserSession(config)

    @property
    def tier(self) -> Tier:
        return Tier.BROWSER

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    async def fetch(self, request: ListingRequest) -> FetchOutcome:
        try:
            return await asyncio.wait_for(
                self._fetch(request), timeout=self._config.request_timeout_s,
            )
        except asyncio.TimeoutError as e:
            msg = f"Browser request timed out after {self._config.request_timeout_s:.0f}s: {request.url}"
            raise FetchError(msg) from e

    async def aclose(self) -> None:
        await self._session.close()

    async def _fetch(self, request: ListingRequest) -> FetchOutcome:
        user_agent, viewport = random.choice(FINGERPRINTS)
        proxy = to_playwright_proxy(self._proxy.new_url() if self._proxy else None)

        # Launch failures stay fatal; everything after launch counts as a page failure.
        await self._session.start()
        try:
            async with self._session.new_context(
                user_agent=user_agent, viewport=viewport, proxy=proxy,
            ) as context:
                page = await context.new_page()
                try:
                    response = await page.goto(request.url, wait_until="domcontentloaded")
                except PlaywrightError as e:
                    msg = f"Navigation failed for {request.url}: {e}"
                    raise FetchError(msg) from e

                status = response.status if response is not None else None
                if status is not None and status >= 400:
                    msg = f"HTTP {status} for {request.url} (browser)"
                    raise FetchError(msg)

                await dismiss_popups(page, CONSENT_BUTTON_SELECTORS)
                await random_sleep(self._config.settle_min_s, self._config.settle_max_s)

                try:
                    state = await read_page_state(page)
                except PlaywrightError as e:
                    msg = f"Could not read page state for {request.url}: {e}"
                    raise FetchError(msg) from e
        except PlaywrightError as e:
            msg = f"Browser context failed for {request.url}: {e}"
            raise FetchError(msg) from e

        if state is None:
            return FetchOutcome(request=request, status=status, blocked_reason="no embedded state")
        return FetchOutcome(request=request, state=state, status=status)


async def read_page_state(page: Any) -> ListingState | None:
    """Read the result-list state from the page global, else from its HTML."""
    doc = await page.evaluate(READ_STATE_JS, [STATE_GLOBAL, STATE_KEY])
    if isinstance(doc, dict):
        return state_from_document(doc)
    logger.debug("State global missing, scanning rendered HTML")
    return extract_state(await page.content())
