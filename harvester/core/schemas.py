"""Core data models for the harvester."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SOURCE = "caterer.com"


class Tier(str, Enum):
    """Fetch implementation a page request is routed to."""

    HTTP = "http"
    BROWSER = "browser"


class ListingRequest(BaseModel):
    """A listing page to fetch.

    ``start_url`` is the page-1 URL the request was derived from, so the
    successor can be built without re-parsing ``url``.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    page: int = Field(default=1, ge=1)
    tier: Tier = Tier.HTTP
    start_url: str

    def escalate(self) -> "ListingRequest":
        """Same page, routed to the browser tier."""
        return self.model_copy(update={"tier": Tier.BROWSER})


class Pagination(BaseModel):
    """Pagination descriptor read from the listing state."""

    model_config = ConfigDict(frozen=True)

    current_page: int = 1
    page_count: int = 0


class ListingState(BaseModel):
    """Parsed embedded state of one listing page.

    Opaque beyond the ordered raw entries and the pagination descriptor;
    the full document is kept for debugging.
    """

    model_config = ConfigDict(frozen=True)

    items: list[dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
    document: dict[str, Any] = Field(default_factory=dict, repr=False)


class FetchOutcome(BaseModel):
    """What a tier returns for one request.

    A blocked outcome is not an error: it routes the page to the browser tier.
    """

    request: ListingRequest
    state: ListingState | None = None
    status: int | None = None
    blocked_reason: str | None = None

    @property
    def blocked(self) -> bool:
        return self.blocked_reason is not None


class JobRecord(BaseModel):
    """One job in the output schema.

    ``url`` and ``title`` are required; everything else is best-effort.
    Provenance fields are filled by the controller at emission time.
    """

    model_config = ConfigDict(frozen=True)

    source: str = SOURCE
    title: str
    company: str | None = None
    location: str | None = None
    salary: str | None = None
    job_type: str | None = None
    date_posted: str | None = None
    description: str | None = None
    url: str
    job_id: str | None = None
    keyword_search: str | None = None
    location_search: str | None = None
    extracted_at: str | None = None


class RunStats(BaseModel):
    """Counters written as the run-statistics record at termination.

    Serialised with camelCase keys (``by_alias=True``).
    """

    model_config = ConfigDict(populate_by_name=True)

    pages_processed: int = Field(default=0, serialization_alias="listPagesProcessed")
    jobs_extracted: int = Field(default=0, serialization_alias="jobsExtracted")
    jobs_saved: int = Field(default=0, serialization_alias="jobsSaved")
    http_pages: int = Field(default=0, serialization_alias="cheerioUsed")
    browser_pages: int = Field(default=0, serialization_alias="playwrightUsed")
    blocked_pages: int = Field(default=0, serialization_alias="blockedPages")
    failed_pages: int = Field(default=0, serialization_alias="failedPages")
    duplicates_skipped: int = Field(default=0, serialization_alias="duplicatesSkipped")
    filtered_by_recency: int = Field(default=0, serialization_alias="filteredByRecency")
    detail_pages_processed: int = Field(default=0, serialization_alias="detailPagesProcessed")

    def record_page(self, tier: Tier) -> None:
        self.pages_processed += 1
        if tier is Tier.HTTP:
            self.http_pages += 1
        else:
            self.browser_pages += 1
