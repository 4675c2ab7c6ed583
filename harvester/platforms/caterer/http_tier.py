"""Fast HTTP tier: paced GETs through a small rotating session pool.

A response is *blocked* (not failed) when it carries a 403, a block-page
marker, a suspiciously short body, or no embedded state. Blocked pages are
handed to the browser tier by the controller.
"""

import logging
import random
import uuid
from dataclasses import dataclass

import httpx

from harvester.browser.actions import random_sleep
from harvester.core.config import HttpTierConfig
from harvester.core.proxy import ProxyProvisioner
from harvester.core.schemas import FetchOutcome, ListingRequest, Tier
from harvester.platforms.base import FetchError, FetchTier
from harvester.platforms.caterer.selectors import (
    BASE_HEADERS,
    BLOCKED_BODY_MARKERS,
    BLOCKED_STATUS,
    FINGERPRINTS,
)
from harvester.platforms.caterer.state import extract_state

logger = logging.getLogger(__name__)


def detect_blocking(status: int, body: str, min_body_length: int) -> str | None:
    """Return why a response looks blocked, or None if it looks usable."""
    if status == BLOCKED_STATUS:
        return f"status {status}"
    for marker in BLOCKED_BODY_MARKERS:
        if marker in body:
            return f"body contains '{marker}'"
    if len(body) < min_body_length:
        return f"body too short ({len(body)} chars)"
    return None


@dataclass
class _Session:
    session_id: str
    client: httpx.AsyncClient
    uses: int = 0
    in_flight: int = 0
    retired: bool = False


class SessionPool:
    """Bounded pool of HTTP clients, each retired after ``max_uses`` requests.

    Each session gets its own proxy URL so a retired session also drops its IP.
    A retired session leaves the pool at once but its client is closed only
    when no request is still using it.
    """

    def __init__(
        self,
        config: HttpTierConfig,
        proxy: ProxyProvisioner | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._proxy = proxy
        self._transport = transport
        self._sessions: list[_Session] = []
        self.created = 0
        self.retired = 0

    def __len__(self) -> int:
        return len(self._sessions)

    def acquire(self) -> _Session:
        """Pick a session (creating one while below capacity) and count the use."""
        if len(self._sessions) < self._config.session_pool_size:
            session = self._create()
        else:
            session = random.choice(self._sessions)
        session.uses += 1
        session.in_flight += 1
        return session

    async def release(self, session: _Session, *, retire: bool = False) -> None:
        """Hand a session back; retire it if asked or if it is used up."""
        session.in_flight = max(session.in_flight - 1, 0)
        if (retire or session.uses >= self._config.session_max_uses) and not session.retired:
            session.retired = True
            if session in self._sessions:
                self._sessions.remove(session)
            self.retired += 1
            logger.debug("Retired session %s after %d uses", session.session_id, session.uses)
        if session.retired and session.in_flight == 0:
            await session.client.aclose()

    async def aclose(self) -> None:
        sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.retired = True
            await session.client.aclose()

    def _create(self) -> _Session:
        session_id = uuid.uuid4().hex[:12]
        kwargs: dict[str, object] = {
            "headers": BASE_HEADERS,
            "timeout": self._config.timeout_s,
            "follow_redirects": True,
        }
        proxy_url = self._proxy.new_url(session_id) if self._proxy else None
        if proxy_url:
            kwargs["proxy"] = proxy_url
        if self._transport is not None:
            kwargs["transport"] = self._transport
        session = _Session(session_id=session_id, client=httpx.AsyncClient(**kwargs))  # type: ignore[arg-type]
        self._sessions.append(session)
        self.created += 1
        return session


class HttpTier(FetchTier):
    """Listing fetcher over plain HTTP.

    ``transport`` is injectable so tests can use ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: HttpTierConfig,
        proxy: ProxyProvisioner | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._pool = SessionPool(config, proxy=proxy, transport=transport)
        self._requests_sent = 0

    @property
    def tier(self) -> Tier:
        return Tier.HTTP

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    @property
    def pool(self) -> SessionPool:
        return self._pool

    async def fetch(self, request: ListingRequest) -> FetchOutcome:
        response, session = await self._get(request.url)

        if response.status_code != BLOCKED_STATUS and not response.is_success:
            await self._pool.release(session, retire=True)
            msg = f"HTTP {response.status_code} for {request.url}"
            raise FetchError(msg)

        body = response.text
        reason = detect_blocking(response.status_code, body, self._config.min_body_length)
        state = None
        if reason is None:
            state = extract_state(body)
            if state is None:
                reason = "no embedded state"

        if reason is not None:
            logger.warning("Page %d blocked on HTTP tier: %s", request.page, reason)
            await self._pool.release(session, retire=True)
            return FetchOutcome(
                request=request, status=response.status_code, blocked_reason=reason,
            )

        await self._pool.release(session)
        logger.debug("Fetched %s (%d chars)", request.url, len(body))
        return FetchOutcome(request=request, state=state, status=response.status_code)

    async def fetch_detail(self, url: str) -> str:
        """GET a job detail page and return its HTML."""
        response, session = await self._get(url)
        if not response.is_success:
            await self._pool.release(session, retire=True)
            msg = f"HTTP {response.status_code} for {url}"
            raise FetchError(msg)
        await self._pool.release(session)
        return response.text

    async def aclose(self) -> None:
        await self._pool.aclose()

    async def _get(self, url: str) -> tuple[httpx.Response, _Session]:
        """Paced GET with a fresh user agent. Transport errors become FetchError."""
        if self._requests_sent > 0:
            await random_sleep(self._config.pacing_min_s, self._config.pacing_max_s)
        self._requests_sent += 1

        session = self._pool.acquire()
        user_agent, _ = random.choice(FINGERPRINTS)
        try:
            response = await session.client.get(url, headers={"User-Agent": user_agent})
        except httpx.TimeoutException as e:
            await self._pool.release(session, retire=True)
            msg = f"Timeout fetching {url}"
            raise FetchError(msg) from e
        except httpx.HTTPError as e:
            await self._pool.release(session, retire=True)
            msg = f"Request failed for {url}: {e}"
            raise FetchError(msg) from e
        except BaseException:
            # Cancelled mid-request: retire so the client still gets closed.
            await self._pool.release(session, retire=True)
            raise
        return response, session
