"""Extraction stage — discover profile links, then extract each one with checkpointing."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from harvester.browser.layer import BrowserLayer
from harvester.config.settings import ScrapeConfig
from harvester.pipeline.checkpoint import CheckpointStore
from harvester.pipeline.discovery import BrowserLinkSource, LinkDiscoverer, PageLinks
from harvester.pipeline.extraction import ExtractionRecord, ScrapeResult
from harvester.pipeline.profile import ProfileExtractor
from harvester.runner.job import CheckpointedJob, JobReport
from harvester.runner.outcome import Outcome, Success, WorkItem
from harvester.signals.emitter import SignalEmitter

logger = logging.getLogger(__name__)

ExtractFn = Callable[[str], Awaitable[ExtractionRecord]]


@dataclass
class PageSummary:
    page_number: int
    total: int = 0
    succeeded: int = 0

    @property
    def failed(self) -> int:
        return self.total - self.succeeded


@dataclass
class ScrapeSummary:
    pages: list[PageLinks]
    report: JobReport[ScrapeResult]
    by_page: dict[int, PageSummary] = field(default_factory=dict)

    @property
    def discovered(self) -> int:
        return sum(len(page.links) for page in self.pages)

    @property
    def total(self) -> int:
        return len(self.report.records)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.report.records if r.succeeded)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded


def to_scrape_result(item: WorkItem[str], outcome: Outcome) -> ScrapeResult:
    if isinstance(outcome, Success):
        return ScrapeResult(url=item.key, data=outcome.payload, page_number=item.group)
    return ScrapeResult(url=item.key, data=None, error=outcome.reason, page_number=item.group)


def summarize_by_page(records: Sequence[ScrapeResult]) -> dict[int, PageSummary]:
    pages: dict[int, PageSummary] = defaultdict(lambda: PageSummary(page_number=0))
    for record in records:
        page_number = record.page_number or 1
        summary = pages[page_number]
        summary.page_number = page_number
        summary.total += 1
        if record.succeeded:
            summary.succeeded += 1
    return dict(sorted(pages.items()))


def format_scrape_summary(summary: ScrapeSummary) -> str:
    lines = [
        "=== SCRAPING COMPLETE ===",
        f"Links discovered this run: {summary.discovered}",
        f"Profiles in checkpoint: {summary.total}",
        f"Successful: {summary.succeeded}",
        f"Failed: {summary.failed}",
        f"Processed this run: {summary.report.processed} "
        f"in {summary.report.batches} batches ({summary.report.skipped} already done)",
        "",
        "Results by page:",
    ]
    for page in summary.by_page.values():
        lines.append(
            f"  Page {page.page_number}: {page.total} profiles "
            f"({page.succeeded} successful, {page.failed} failed)"
        )
    return "\n".join(lines)


async def scrape_pages(
    pages: Sequence[PageLinks],
    extract: ExtractFn,
    store: CheckpointStore[ScrapeResult],
    config: ScrapeConfig,
    signals: SignalEmitter | None = None,
) -> ScrapeSummary:
    """Run the checkpointed extraction job over already discovered pages."""
    items = [item for page in pages for item in page.items()]

    async def operation(item: WorkItem[str]) -> ExtractionRecord:
        return await extract(item.key)

    job = CheckpointedJob(
        "scrape",
        store,
        operation,
        to_scrape_result,
        batch=config.batch,
        retry=config.retry,
        signals=signals,
    )
    report = await job.run(items)
    return ScrapeSummary(
        pages=list(pages),
        report=report,
        by_page=summarize_by_page(report.records),
    )


async def run_scrape(
    config: ScrapeConfig,
    signals: SignalEmitter | None = None,
    browser: BrowserLayer | None = None,
) -> ScrapeSummary:
    """Walk the listing and extract every profile, sharing one browser."""
    owns_browser = browser is None
    browser = browser or BrowserLayer(config.browser)
    if owns_browser:
        await browser.start()

    try:
        async with browser.open_page() as listing_page:
            source = BrowserLinkSource(listing_page, config.discovery, config.timeouts)
            discoverer = LinkDiscoverer(
                source,
                max_pages=config.discovery.max_pages,
                page_param=config.discovery.page_param,
                signals=signals,
            )
            pages = await discoverer.discover(config.discovery.list_url)

        if not pages:
            logger.warning("No profile links discovered at %s", config.discovery.list_url)

        extractor = ProfileExtractor(browser, config.timeouts)
        store = CheckpointStore(config.pipeline.extraction_path, ScrapeResult)
        return await scrape_pages(pages, extractor.extract, store, config, signals)
    finally:
        if owns_browser:
            await browser.stop()
