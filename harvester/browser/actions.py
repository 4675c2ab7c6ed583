"""Reusable page actions: randomised sleep and consent dismissal.

All delays go through random_sleep() so tests can patch a single point.
"""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)

CONSENT_VISIBLE_TIMEOUT_MS = 1000


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    Floor enforcement: min_s is always respected as the absolute minimum.
    If max_s < min_s, max_s is raised to min_s.

    Returns the actual sleep duration (useful for testing).
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def dismiss_popups(page: Any, selectors: tuple[str, ...]) -> bool:
    """Click the first visible consent button. Best-effort, never raises.

    Returns True if something was clicked.
    """
    for selector in selectors:
        try:
            button = page.locator(selector).first
            if await button.is_visible(timeout=CONSENT_VISIBLE_TIMEOUT_MS):
                await button.click()
                logger.debug("Dismissed popup via '%s'", selector)
                return True
        except Exception:
            logger.debug("Popup selector '%s' raised, trying next", selector, exc_info=True)
    return False
