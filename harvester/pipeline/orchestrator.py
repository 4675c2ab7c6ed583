"""Harvest controller: drives listing pages through both fetch tiers.

Per-page flow:
  1. Fetch on the current tier (bounded retries)
  2. Blocked / failed on HTTP  -> queued for the browser tier
     Blocked / failed on browser -> dropped
  3. Shape entries -> gate each record (limit, dedup, recency) -> sink
  4. Queue page + 1 on the same tier while under every limit

Tiers run in phases: the HTTP queue drains completely before the browser
tier sees the pages it gave up on.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from harvester.core.config import SearchSpec, Settings
from harvester.core.proxy import ProxyProvisioner
from harvester.core.schemas import (
    FetchOutcome,
    JobRecord,
    ListingRequest,
    Pagination,
    RunStats,
    Tier,
)
from harvester.core.sink import DatasetSink, SinkError
from harvester.pipeline.dates import to_iso, utc_now
from harvester.pipeline.matcher import (
    DeduplicationFilter,
    RecencyFilter,
    Rejection,
    check_record,
)
from harvester.platforms.base import FetchError, FetchTier
from harvester.platforms.caterer.browser_tier import BrowserTier
from harvester.platforms.caterer.http_tier import HttpTier
from harvester.platforms.caterer.parser import parse_job_posting, shape_entries
from harvester.platforms.caterer.searcher import canonical_start, has_next_page, paginate

logger = logging.getLogger(__name__)

BROWSER_CONCURRENCY = 1
STATS_KEY = "STATS"


@dataclass
class RunState:
    """Mutable state of one run. Only touched from the controller's event loop."""

    saved: int = 0
    dedup: DeduplicationFilter = field(default_factory=DeduplicationFilter)
    blocked: list[ListingRequest] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)
    last_pagination: Pagination | None = None


class HarvestController:
    """Runs one search to completion.

    Usage::

        controller = HarvestController(spec, sink, http_tier, browser_tier)
        stats = await controller.run()
    """

    def __init__(
        self,
        spec: SearchSpec,
        sink: DatasetSink,
        http: FetchTier,
        browser: FetchTier,
        *,
        http_concurrency: int = 2,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._spec = spec
        self._sink = sink
        self._http = http
        self._browser = browser
        self._http_concurrency = http_concurrency
        self._clock = clock
        self._recency = RecencyFilter(spec.posted_within)
        self.state = RunState()

    @property
    def start_url(self) -> str:
        return self._spec.explicit_start_url or canonical_start(self._spec.keyword, self._spec.location)

    @property
    def done(self) -> bool:
        return self.state.saved >= self._spec.results_wanted

    async def run(self) -> RunStats:
        """Harvest until the target count is saved or both tiers drain.

        Statistics are written on every exit path; sink failures are fatal.
        """
        start_url = self.start_url
        logger.info(
            "Starting harvest: %s (want %d, max %d pages, posted within %s)",
            start_url, self._spec.results_wanted, self._spec.max_pages,
            self._spec.posted_within.value,
        )
        seed = ListingRequest(url=start_url, page=1, tier=Tier.HTTP, start_url=start_url)

        failed = True
        try:
            await self._drain(self._http, [seed], self._http_concurrency)

            if not self.done and self.state.blocked:
                retry = [r.escalate() for r in self.state.blocked]
                self.state.blocked.clear()
                logger.info("Escalating %d page(s) to the browser tier", len(retry))
                await self._drain(self._browser, retry, BROWSER_CONCURRENCY)
            failed = False
        finally:
            await self._finalize(raise_errors=not failed)

        return self.state.stats

    # --- Scheduling ---

    async def _drain(
        self,
        tier: FetchTier,
        requests: list[ListingRequest],
        concurrency: int,
    ) -> None:
        """Process a tier's queue with bounded workers until it is empty."""
        queue: asyncio.Queue[ListingRequest] = asyncio.Queue()
        for request in requests:
            queue.put_nowait(request)

        async def worker() -> None:
            while True:
                request = await queue.get()
                try:
                    if not self.done:
                        await self._process(tier, request, queue)
                finally:
                    queue.task_done()

        workers = [asyncio.create_task(worker()) for _ in range(max(concurrency, 1))]
        joiner = asyncio.create_task(queue.join())
        try:
            finished, _ = await asyncio.wait(
                [joiner, *workers], return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (joiner, *workers):
                task.cancel()
            await asyncio.gather(joiner, *workers, return_exceptions=True)

        for task in finished:
            if task is not joiner and not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

    async def _process(
        self,
        tier: FetchTier,
        request: ListingRequest,
        queue: "asyncio.Queue[ListingRequest]",
    ) -> None:
        outcome = await self._fetch_with_retries(tier, request)
        stats = self.state.stats

        if outcome is None:
            stats.failed_pages += 1
            if tier.tier is Tier.HTTP:
                logger.warning("Page %d failed on HTTP tier, queued for browser", request.page)
                self.state.blocked.append(request)
            else:
                logger.warning("Page %d failed on browser tier, dropping", request.page)
            return

        if outcome.blocked or outcome.state is None:
            if tier.tier is Tier.HTTP:
                stats.blocked_pages += 1
                self.state.blocked.append(request)
            else:
                logger.warning(
                    "Page %d still has no usable state on browser tier (%s), dropping",
                    request.page, outcome.blocked_reason,
                )
            return

        now = self._clock()
        listing = outcome.state
        stats.record_page(tier.tier)
        self.state.last_pagination = listing.pagination

        records = shape_entries(listing.items, now=now)
        stats.jobs_extracted += len(records)
        logger.info(
            "Extracted %d jobs on page %d (%s tier, %d raw entries)",
            len(records), request.page, tier.tier.value, len(listing.items),
        )

        await self._emit(records, now)

        if has_next_page(
            request.page,
            listing.pagination,
            saved=self.state.saved,
            desired=self._spec.results_wanted,
            max_pages=self._spec.max_pages,
        ):
            next_page = request.page + 1
            queue.put_nowait(request.model_copy(update={
                "url": paginate(request.start_url, next_page),
                "page": next_page,
            }))
            logger.info("Queued page %d on %s tier", next_page, tier.tier.value)
        else:
            logger.info(
                "Pagination ended at page %d (page count %d, saved %d/%d, max pages %d)",
                request.page, listing.pagination.page_count, self.state.saved,
                self._spec.results_wanted, self._spec.max_pages,
            )

    async def _fetch_with_retries(
        self, tier: FetchTier, request: ListingRequest,
    ) -> FetchOutcome | None:
        """First outcome within the retry budget, or None if every attempt failed."""
        attempts = tier.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await tier.fetch(request)
            except FetchError as e:
                logger.debug(
                    "Attempt %d/%d for page %d on %s tier failed: %s",
                    attempt, attempts, request.page, tier.tier.value, e,
                )
        return None

    # --- Emission ---

    async def _emit(self, records: list[JobRecord], now: datetime) -> None:
        """Gate and emit a page of records in source order."""
        for record in records:
            rejection = self._reject(record, now)
            if rejection is Rejection.LIMIT:
                break
            if rejection is not None:
                continue

            if self._spec.collect_details:
                record = await self._enrich(record)
                # Another worker may have emitted while the detail page loaded.
                rejection = self._reject(record, now)
                if rejection is Rejection.LIMIT:
                    break
                if rejection is not None:
                    continue

            record = record.model_copy(update={
                "keyword_search": self._spec.keyword,
                "location_search": self._spec.location,
                "extracted_at": to_iso(now),
            })
            # Slot and URL are claimed before the append and released if it fails.
            self.state.dedup.mark(record)
            self.state.saved += 1
            try:
                await self._sink.push_data(record)
            except SinkError:
                self.state.dedup.discard(record)
                self.state.saved -= 1
                raise
            self.state.stats.jobs_saved = self.state.saved
            logger.info(
                "Saved job %d/%d: %s", self.state.saved, self._spec.results_wanted, record.title,
            )

    def _reject(self, record: JobRecord, now: datetime) -> Rejection | None:
        rejection = check_record(
            record,
            saved=self.state.saved,
            desired=self._spec.results_wanted,
            dedup=self.state.dedup,
            recency=self._recency,
            now=now,
        )
        if rejection is Rejection.DUPLICATE:
            self.state.stats.duplicates_skipped += 1
            logger.debug("Skipping duplicate %s", record.url)
        elif rejection is Rejection.TOO_OLD:
            self.state.stats.filtered_by_recency += 1
        return rejection

    async def _enrich(self, record: JobRecord) -> JobRecord:
        """Merge JobPosting fields from the detail page; listing data on failure."""
        try:
            html = await self._http.fetch_detail(record.url)
        except FetchError as e:
            logger.warning("Detail fetch failed for %s: %s", record.url, e)
            return record
        self.state.stats.detail_pages_processed += 1
        details = parse_job_posting(html)
        if not details:
            return record
        return record.model_copy(update=details)

    # --- Finalisation ---

    async def _finalize(self, *, raise_errors: bool) -> None:
        stats = self.state.stats
        stats.jobs_saved = self.state.saved
        try:
            await self._sink.set_value(STATS_KEY, stats)
        except SinkError:
            if raise_errors:
                raise
            logger.exception("Could not write run statistics")
        logger.info(
            "Harvest finished: %d/%d saved, stats=%s",
            self.state.saved, self._spec.results_wanted,
            stats.model_dump(by_alias=True),
        )


async def harvest(spec: SearchSpec, settings: Settings) -> RunStats:
    """Build both tiers and the sink for one run, then run the controller."""
    proxy = ProxyProvisioner.from_config(spec.proxy_configuration)
    http = HttpTier(settings.http, proxy=proxy)
    browser = BrowserTier(settings.browser, proxy=proxy)
    try:
        async with DatasetSink(settings.output.storage_dir) as sink:
            controller = HarvestController(
                spec, sink, http, browser, http_concurrency=settings.http.max_concurrency,
            )
            return await controller.run()
    finally:
        await http.aclose()
        await browser.aclose()
