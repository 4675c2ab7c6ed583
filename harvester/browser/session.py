"""Browser lifetime management using patchright.

Rules:
  - One browser per run, launched lazily on first use
  - One context per page request, closed on every exit path
  - Every context hides automation hints and drops heavy resources
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

from patchright.async_api import Browser, BrowserContext, Playwright, Route, async_playwright

from harvester.core.config import BrowserTierConfig

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset({"image", "media", "font"})

LAUNCH_ARGS: tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--lang=en-GB,en-US",
)

STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) => (
    parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : originalQuery(parameters)
);
"""


class BrowserSession:
    """Async context manager that owns one patchright browser.

    Usage::

        async with BrowserSession(config) as session:
            async with session.new_context(user_agent=ua) as context:
                page = await context.new_page()
                await page.goto("https://...")
    """

    def __init__(self, config: BrowserTierConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the browser. Launch failures propagate (fatal for the tier)."""
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._config.headless,
            args=list(LAUNCH_ARGS),
        )
        logger.info("Browser launched (headless=%s)", self._config.headless)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @asynccontextmanager
    async def new_context(
        self,
        *,
        user_agent: str | None = None,
        viewport: dict[str, int] | None = None,
        proxy: dict[str, str] | None = None,
    ) -> AsyncIterator[BrowserContext]:
        """Yield a fresh stealth context scoped to one page request."""
        if self._browser is None:
            await self.start()
        assert self._browser is not None

        options: dict[str, Any] = {
            "locale": "en-GB",
            "ignore_https_errors": True,
        }
        if user_agent:
            options["user_agent"] = user_agent
        if viewport:
            options["viewport"] = viewport
        if proxy:
            options["proxy"] = proxy

        context = await self._browser.new_context(**options)
        try:
            context.set_default_navigation_timeout(self._config.navigation_timeout_ms)
            await context.add_init_script(STEALTH_INIT_SCRIPT)
            await context.route("**/*", _abort_heavy_resources)
            yield context
        finally:
            await context.close()


async def _abort_heavy_resources(route: Route) -> None:
    """Abort image/media/font requests; let everything else through."""
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()
