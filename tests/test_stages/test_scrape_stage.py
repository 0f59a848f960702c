"""Tests for the extraction stage wiring."""

import json

import pytest

from fakes import FakeBrowser, profile_route
from harvester.config.settings import (
    BatchConfig,
    DiscoveryConfig,
    PipelineConfig,
    RetryConfig,
    ScrapeConfig,
    TimeoutConfig,
)
from harvester.pipeline.checkpoint import CheckpointStore
from harvester.pipeline.discovery import PageLinks
from harvester.pipeline.extraction import ExtractionRecord, ScrapeResult
from harvester.stages.scrape import format_scrape_summary, run_scrape, scrape_pages, summarize_by_page

LIST_URL = "https://directory.example/search?q=psicoterapeuta"


def _config(tmp_path, **discovery):
    return ScrapeConfig(
        discovery=DiscoveryConfig(list_url=LIST_URL, **discovery),
        timeouts=TimeoutConfig(settle_ms=0, listing_settle_ms=0, reveal_timeout_s=1),
        pipeline=PipelineConfig(data_dir=tmp_path),
        batch=BatchConfig(batch_size=2, concurrency=2, batch_delay_s=0),
        retry=RetryConfig(max_retries=1, retry_delay_s=0),
    )


class TestScrapePages:
    @pytest.mark.asyncio
    async def test_records_keep_page_numbers(self, tmp_path):
        async def extract(url):
            if url.endswith("bad"):
                raise TimeoutError("Timeout 60000ms exceeded")
            return ExtractionRecord(name=url.rsplit("/", 1)[1])

        pages = [PageLinks(1, ["https://x/a", "https://x/bad"]), PageLinks(2, ["https://x/c"])]
        store = CheckpointStore(tmp_path / "out.json", ScrapeResult)
        summary = await scrape_pages(pages, extract, store, _config(tmp_path))

        assert summary.total == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        rows = {row["url"]: row for row in json.loads(store.path.read_text())}
        assert rows["https://x/c"]["pageNumber"] == 2
        assert rows["https://x/bad"]["error"] == "Timeout 60000ms exceeded"
        assert summary.by_page[1].failed == 1
        assert summary.by_page[2].succeeded == 1

    def test_summarize_by_page_defaults_to_page_one(self):
        pages = summarize_by_page([ScrapeResult(url="a", data=ExtractionRecord()), ScrapeResult(url="b")])
        assert list(pages) == [1]
        assert pages[1].total == 2
        assert pages[1].succeeded == 1

    @pytest.mark.asyncio
    async def test_summary_text(self, tmp_path):
        async def extract(url):
            return ExtractionRecord(name="A")

        store = CheckpointStore(tmp_path / "out.json", ScrapeResult)
        summary = await scrape_pages([PageLinks(1, ["https://x/a"])], extract, store, _config(tmp_path))
        text = format_scrape_summary(summary)
        assert "Successful: 1" in text
        assert "Page 1: 1 profiles (1 successful, 0 failed)" in text


class TestRunScrape:
    @pytest.mark.asyncio
    async def test_end_to_end_with_fake_browser(self, tmp_path):
        routes = {
            LIST_URL: {"links": ["https://x/rossi", "https://x/bianchi"]},
            f"{LIST_URL}&page=2": {"links": ["https://x/bianchi", "https://x/verdi"]},
            f"{LIST_URL}&page=3": {"links": []},
            "https://x/rossi": profile_route(name="Dott. Rossi", extended="Approccio corporeo."),
            "https://x/bianchi": profile_route(name="Dott.ssa Bianchi", rating=None),
            "https://x/verdi": ConnectionError("net::ERR_CONNECTION_RESET"),
        }
        browser = FakeBrowser(routes)
        config = _config(tmp_path, max_pages=5)

        summary = await run_scrape(config, browser=browser)

        assert [(p.page_number, p.links) for p in summary.pages] == [
            (1, ["https://x/rossi", "https://x/bianchi"]),
            (2, ["https://x/verdi"]),
        ]
        rows = {row["url"]: row for row in json.loads(config.pipeline.extraction_path.read_text())}
        assert len(rows) == 3
        assert rows["https://x/rossi"]["data"]["extendedAbout"] == "Approccio corporeo."
        assert rows["https://x/bianchi"]["data"]["rating"] is None
        assert rows["https://x/verdi"]["data"] is None
        assert "Failed to load" in rows["https://x/verdi"]["error"]
        assert all(page.closed for page in browser.pages)

    @pytest.mark.asyncio
    async def test_rerun_resumes(self, tmp_path):
        routes = {
            LIST_URL: {"links": ["https://x/a"]},
            "https://x/a": profile_route(),
        }
        config = _config(tmp_path, max_pages=1)
        await run_scrape(config, browser=FakeBrowser(routes))

        routes[LIST_URL] = {"links": ["https://x/a", "https://x/b"]}
        routes["https://x/b"] = profile_route(name="B")
        browser = FakeBrowser(routes)
        summary = await run_scrape(config, browser=browser)

        assert summary.report.skipped == 1
        assert summary.report.processed == 1
        assert summary.total == 2
        # one listing page plus the single new profile
        assert len(browser.pages) == 2
