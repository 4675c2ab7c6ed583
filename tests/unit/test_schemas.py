"""Tests for the core data models."""

import pytest
from pydantic import ValidationError

from harvester.core.schemas import (
    FetchOutcome,
    JobRecord,
    ListingRequest,
    RunStats,
    Tier,
)

START = "https://www.caterer.com/jobs/chef"


class TestListingRequest:
    def test_escalate_keeps_page(self) -> None:
        request = ListingRequest(url=f"{START}?page=3", page=3, start_url=START)
        escalated = request.escalate()
        assert escalated.tier is Tier.BROWSER
        assert escalated.page == 3
        assert escalated.url == request.url
        assert request.tier is Tier.HTTP

    def test_page_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ListingRequest(url=START, page=0, start_url=START)


class TestFetchOutcome:
    def test_blocked_flag(self) -> None:
        request = ListingRequest(url=START, start_url=START)
        assert FetchOutcome(request=request, blocked_reason="status 403").blocked
        assert not FetchOutcome(request=request).blocked


class TestJobRecord:
    def test_required_fields(self) -> None:
        with pytest.raises(ValidationError):
            JobRecord(title="Chef")  # type: ignore[call-arg]

    def test_source_default(self) -> None:
        assert JobRecord(title="Chef", url="https://x").source == "caterer.com"


class TestRunStats:
    def test_record_page(self) -> None:
        stats = RunStats()
        stats.record_page(Tier.HTTP)
        stats.record_page(Tier.BROWSER)
        stats.record_page(Tier.BROWSER)
        assert stats.pages_processed == 3
        assert stats.http_pages == 1
        assert stats.browser_pages == 2

    def test_dump_by_alias(self) -> None:
        data = RunStats(jobs_extracted=4).model_dump(by_alias=True)
        assert data["jobsExtracted"] == 4
        assert set(data) >= {"listPagesProcessed", "jobsSaved", "cheerioUsed", "playwrightUsed"}
