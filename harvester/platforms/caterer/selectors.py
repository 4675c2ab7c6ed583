"""Caterer.com constants: host, embedded-state markers, blocking needles.

Each selector constant is a tuple so callers iterate until a match is found.
"""

SITE_BASE: str = "https://www.caterer.com"

# --- Embedded result-list state ---
STATE_KEY: str = "app-unifiedResultlist"
STATE_MARKER: str = '"app-unifiedResultlist"]'
STATE_GLOBAL: str = "__PRELOADED_STATE__"

# --- Blocking signals (HTTP tier) ---
BLOCKED_STATUS: int = 403
BLOCKED_BODY_MARKERS: tuple[str, ...] = (
    "Access Denied",
    "blocked",
)

# --- Browser tier ---
CONSENT_BUTTON_SELECTORS: tuple[str, ...] = (
    'button:has-text("Accept all")',
    'button:has-text("Accept All")',
    "[id*='accept']",
    "[data-testid*='accept']",
    ".js-accept-consent",
)

# --- Detail page ---
JSON_LD_SELECTOR: str = 'script[type="application/ld+json"]'

# --- Request fingerprints: (user agent, viewport) ---
FINGERPRINTS: tuple[tuple[str, dict[str, int]], ...] = (
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        {"width": 1366, "height": 768},
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        {"width": 1440, "height": 900},
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) Gecko/20100101 Firefox/132.0",
        {"width": 1920, "height": 1080},
    ),
    (
        "Mozilla/5.0 (Linux; Android 14; Pixel 7 Pro) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Mobile Safari/537.36",
        {"width": 390, "height": 844},
    ),
)

BASE_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9,en-US;q=0.8",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}
