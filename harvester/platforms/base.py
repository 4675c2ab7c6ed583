"""Abstract base class for fetch tiers."""

from abc import ABC, abstractmethod

from harvester.core.schemas import FetchOutcome, ListingRequest, Tier


class FetchError(RuntimeError):
    """Network failure, timeout or unusable status. Counts toward retries."""


class FetchTier(ABC):
    """Base class that both fetch tiers implement.

    ``fetch`` returns a FetchOutcome (possibly blocked) or raises FetchError.
    """

    @property
    @abstractmethod
    def tier(self) -> Tier:
        """Which tier this is (routes stats and escalation)."""

    @property
    @abstractmethod
    def max_retries(self) -> int:
        """Retries after the first attempt before the page is given up on."""

    @abstractmethod
    async def fetch(self, request: ListingRequest) -> FetchOutcome:
        """Fetch one listing page and extract its state."""

    async def fetch_detail(self, url: str) -> str:
        """Fetch a job detail page. Tiers that cannot do this raise FetchError."""
        msg = f"{self.tier.value} tier does not fetch detail pages"
        raise FetchError(msg)

    async def aclose(self) -> None:
        """Release sessions, browsers and sockets. Safe to call twice."""
