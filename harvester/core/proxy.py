"""Proxy provisioning from the run's opaque proxy hint.

The hint mirrors the Apify ``proxyConfiguration`` input: either an explicit
list of proxy URLs (rotated round-robin) or Apify proxy groups, which need
``APIFY_PROXY_PASSWORD`` in the environment. Without either, runs go direct.
"""

import itertools
import logging
import os
import uuid
from urllib.parse import quote, unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

APIFY_PROXY_HOST = "proxy.apify.com"
APIFY_PROXY_PORT = 8000


class ProxyConfiguration(BaseModel):
    """Proxy hint as supplied in the run input. Defaults to residential GB."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    use_apify_proxy: bool = Field(default=True, alias="useApifyProxy")
    apify_proxy_groups: list[str] = Field(
        default_factory=lambda: ["RESIDENTIAL"], alias="apifyProxyGroups",
    )
    apify_proxy_country: str | None = Field(default="GB", alias="apifyProxyCountry")
    proxy_urls: list[str] = Field(default_factory=list, alias="proxyUrls")


class ProxyProvisioner:
    """Hands out proxy URLs for new sessions.

    ``new_url(session_id)`` returns None when the run has no proxy.
    """

    def __init__(self, config: ProxyConfiguration, password: str | None = None) -> None:
        self._config = config
        self._password = password
        self._cycle = itertools.cycle(config.proxy_urls) if config.proxy_urls else None

    @classmethod
    def from_config(cls, config: ProxyConfiguration) -> "ProxyProvisioner":
        """Build a provisioner, reading Apify credentials from the environment."""
        password = os.environ.get("APIFY_PROXY_PASSWORD") or None
        provisioner = cls(config, password=password)
        if provisioner.enabled:
            logger.info(
                "Proxy configured (%s)",
                "custom URLs" if config.proxy_urls else "Apify " + ",".join(config.apify_proxy_groups),
            )
        else:
            logger.info("No proxy credentials detected, running without proxy")
        return provisioner

    @property
    def enabled(self) -> bool:
        if self._cycle is not None:
            return True
        return self._config.use_apify_proxy and bool(self._password)

    def new_url(self, session_id: str | None = None) -> str | None:
        """Return a proxy URL for a new session, or None when running direct."""
        if self._cycle is not None:
            return next(self._cycle)
        if not self.enabled:
            return None
        session_id = session_id or uuid.uuid4().hex[:12]
        parts: list[str] = []
        if self._config.apify_proxy_groups:
            parts.append("groups-" + "+".join(self._config.apify_proxy_groups))
        parts.append(f"session-{session_id}")
        if self._config.apify_proxy_country:
            parts.append(f"country-{self._config.apify_proxy_country}")
        username = ",".join(parts)
        password = quote(self._password or "", safe="")
        return f"http://{username}:{password}@{APIFY_PROXY_HOST}:{APIFY_PROXY_PORT}"


def to_playwright_proxy(url: str | None) -> dict[str, str] | None:
    """Split a proxy URL into the dict form the browser context expects."""
    if not url:
        return None
    parsed = urlparse(url)
    server = f"{parsed.scheme or 'http'}://{parsed.hostname}"
    if parsed.port:
        server = f"{server}:{parsed.port}"
    proxy = {"server": server}
    if parsed.username:
        proxy["username"] = unquote(parsed.username)
    if parsed.password:
        proxy["password"] = unquote(parsed.password)
    return proxy
