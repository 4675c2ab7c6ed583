"""Tests for record shaping and detail-page JobPosting parsing."""

import json
from datetime import datetime, timezone
from typing import Any

import pytest

from harvester.core.schemas import SOURCE
from harvester.platforms.caterer.parser import (
    clean_html,
    first_present,
    parse_job_posting,
    shape_entries,
    shape_entry,
)

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def _entry(**overrides: Any) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": 4521,
        "title": "Chef de Partie",
        "url": "/job/chef-de-partie/the-savoy-job4521",
        "companyName": "The Savoy",
        "location": "London",
        "salary": "£32,000 per annum",
        "contractType": "Permanent",
        "datePosted": "2 hours ago",
        "textSnippet": "<strong>Great</strong>&nbsp;kitchen &amp; team",
    }
    entry.update(overrides)
    return entry


# ---------------------------------------------------------------------------
# TestShapeEntry
# ---------------------------------------------------------------------------


class TestShapeEntry:
    def test_full_entry(self) -> None:
        record = shape_entry(_entry(), now=NOW)
        assert record is not None
        assert record.source == SOURCE
        assert record.title == "Chef de Partie"
        assert record.company == "The Savoy"
        assert record.location == "London"
        assert record.salary == "£32,000 per annum"
        assert record.job_type == "Permanent"
        assert record.date_posted == "2026-03-10T10:00:00Z"
        assert record.description == "Great kitchen & team"
        assert record.url == "https://www.caterer.com/job/chef-de-partie/the-savoy-job4521"
        assert record.job_id == "4521"

    def test_missing_title_rejected(self) -> None:
        assert shape_entry(_entry(title=None), now=NOW) is None

    def test_blank_title_rejected(self) -> None:
        assert shape_entry(_entry(title="   "), now=NOW) is None

    def test_missing_url_rejected(self) -> None:
        entry = _entry()
        del entry["url"]
        assert shape_entry(entry, now=NOW) is None

    def test_job_title_fallback(self) -> None:
        record = shape_entry(_entry(title="", jobTitle="Sous Chef"), now=NOW)
        assert record is not None
        assert record.title == "Sous Chef"

    def test_company_card_fallback(self) -> None:
        entry = _entry(companyName=None, companyCard={"name": "Hilton"})
        record = shape_entry(entry, now=NOW)
        assert record is not None
        assert record.company == "Hilton"

    def test_company_priority_order(self) -> None:
        entry = _entry(companyName="", company="Acme Catering", recruiterName="Agency Ltd")
        record = shape_entry(entry, now=NOW)
        assert record is not None
        assert record.company == "Acme Catering"

    @pytest.mark.parametrize(
        ("key", "field"),
        [
            ("jobLocation", "location"),
            ("locationLabel", "location"),
            ("salaryDescription", "salary"),
            ("salaryLabel", "salary"),
            ("employmentType", "job_type"),
            ("workType", "job_type"),
            ("jobId", "job_id"),
        ],
    )
    def test_alternate_keys(self, key: str, field: str) -> None:
        base = {"title": "Porter", "url": "/job/porter-job1", key: "value-x"}
        record = shape_entry(base, now=NOW)
        assert record is not None
        assert getattr(record, field) == "value-x"

    def test_optional_fields_default_to_none(self) -> None:
        record = shape_entry({"title": "Porter", "url": "/job/porter-job1"}, now=NOW)
        assert record is not None
        assert record.company is None
        assert record.salary is None
        assert record.date_posted is None
        assert record.description is None
        assert record.job_id is None

    def test_unparseable_date_kept_verbatim(self) -> None:
        record = shape_entry(_entry(datePosted="Closing soon"), now=NOW)
        assert record is not None
        assert record.date_posted == "Closing soon"

    def test_listing_date_fallback(self) -> None:
        record = shape_entry(_entry(datePosted=None, listingDate="2026-03-01T00:00:00Z"), now=NOW)
        assert record is not None
        assert record.date_posted == "2026-03-01T00:00:00Z"

    def test_description_fallback_keys(self) -> None:
        record = shape_entry(_entry(textSnippet="", snippet="<li>Free meals</li>"), now=NOW)
        assert record is not None
        assert record.description == "Free meals"

    def test_shaping_is_pure(self) -> None:
        entry = _entry()
        assert shape_entry(entry, now=NOW) == shape_entry(dict(entry), now=NOW)
        assert entry["textSnippet"].startswith("<strong>")


class TestShapeEntries:
    def test_preserves_order_and_drops_invalid(self) -> None:
        entries = [
            _entry(id=1, url="/job/a-job1"),
            {"id": 2, "url": "/job/b-job2"},
            _entry(id=3, url="/job/c-job3"),
        ]
        records = shape_entries(entries, now=NOW)
        assert [r.job_id for r in records] == ["1", "3"]


# ---------------------------------------------------------------------------
# TestCleanHtml / TestFirstPresent
# ---------------------------------------------------------------------------


class TestCleanHtml:
    def test_entities_and_whitespace(self) -> None:
        assert clean_html("<p>a&nbsp;&lt;b&gt;\n\n  c &amp; d</p>") == "a <b> c & d"

    def test_empty_after_cleaning(self) -> None:
        assert clean_html("<br/>  ") is None

    def test_non_string(self) -> None:
        assert clean_html(None) is None


class TestFirstPresent:
    def test_skips_empty_and_containers(self) -> None:
        entry = {"a": "", "b": {"x": 1}, "c": [1], "d": 0}
        assert first_present(entry, ("a", "b", "c", "d")) == 0

    def test_dotted_path(self) -> None:
        assert first_present({"x": {"y": "z"}}, ("x.y",)) == "z"

    def test_none_when_all_missing(self) -> None:
        assert first_present({}, ("a", "b")) is None


# ---------------------------------------------------------------------------
# TestParseJobPosting
# ---------------------------------------------------------------------------


def _detail_html(*blocks: Any) -> str:
    scripts = "".join(
        f'<script type="application/ld+json">{b if isinstance(b, str) else json.dumps(b)}</script>'
        for b in blocks
    )
    return f"<html><head>{scripts}</head><body><h1>Job</h1></body></html>"


class TestParseJobPosting:
    def test_reads_job_posting(self) -> None:
        html = _detail_html({
            "@type": "JobPosting",
            "title": "Head Chef",
            "hiringOrganization": {"name": "Rosewood"},
            "jobLocation": {"address": {"addressLocality": "Bath"}},
            "baseSalary": {"value": {"value": 45000}},
            "employmentType": ["FULL_TIME", "PERMANENT"],
            "description": "<p>Lead the&nbsp;brigade</p>",
            "datePosted": "2026-03-01T09:00:00Z",
        })
        details = parse_job_posting(html)
        assert details == {
            "title": "Head Chef",
            "company": "Rosewood",
            "location": "Bath",
            "salary": "45000",
            "job_type": "FULL_TIME, PERMANENT",
            "description": "Lead the brigade",
            "date_posted": "2026-03-01T09:00:00Z",
        }

    def test_ignores_other_types_and_bad_json(self) -> None:
        html = _detail_html("{not json", {"@type": "Organization", "name": "X"})
        assert parse_job_posting(html) == {}

    def test_first_value_wins(self) -> None:
        html = _detail_html([
            {"@type": "JobPosting", "title": "First"},
            {"@type": "JobPosting", "title": "Second", "hiringOrganization": {"name": "Co"}},
        ])
        assert parse_job_posting(html) == {"title": "First", "company": "Co"}
