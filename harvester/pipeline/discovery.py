"""Link discovery — walks numbered listing pages and collects detail-page URLs.

Pages are visited sequentially. A URL is emitted only on the first page it
appears on. The walk stops as soon as a page has no candidate links at all;
a page that fails to load is skipped, not fatal.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterator, Protocol

from playwright.async_api import Page

from harvester.browser.consent import dismiss_consent
from harvester.browser.layer import BrowserLayer
from harvester.config.settings import DiscoveryConfig, TimeoutConfig
from harvester.runner.outcome import WorkItem
from harvester.signals.emitter import SignalEmitter
from harvester.signals.types import SignalType
from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class LinkSource(Protocol):
    """Anything that can list candidate detail URLs for a listing page URL."""

    async def fetch_links(self, url: str) -> list[str]: ...


@dataclass
class PageLinks:
    """New links first seen on ``page_number``."""

    page_number: int
    links: list[str] = field(default_factory=list)

    def items(self) -> Iterator[WorkItem[str]]:
        for link in self.links:
            yield WorkItem(key=link, payload=link, group=self.page_number)


def page_url(root_url: str, page_number: int, page_param: str = "page") -> str:
    """Page 1 is the root itself; later pages add ``page_param=N`` to the query."""
    if page_number < 1:
        raise ValueError("page_number must be >= 1")
    if page_number == 1:
        return root_url
    separator = "&" if "?" in root_url else "?"
    return f"{root_url}{separator}{page_param}={page_number}"


class LinkDiscoverer:
    """Sequential, globally deduplicated walk over numbered listing pages."""

    def __init__(
        self,
        source: LinkSource,
        max_pages: int = 10,
        page_param: str = "page",
        signals: SignalEmitter | None = None,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self._source = source
        self._max_pages = max_pages
        self._page_param = page_param
        self._signals = signals

    async def discover(self, root_url: str) -> list[PageLinks]:
        pages: list[PageLinks] = []
        seen: set[str] = set()

        for page_number in range(1, self._max_pages + 1):
            url = page_url(root_url, page_number, self._page_param)
            logger.info("Scanning listing page %d: %s", page_number, url)

            try:
                raw_links = await self._source.fetch_links(url)
            except Exception as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.PAGE_FETCH_FAILED,
                    message=str(exc),
                    suppressed=True,
                    details={"page_number": page_number, "url": url},
                    level=logging.WARNING,
                )
                continue

            new_links: list[str] = []
            for link in raw_links:
                if link not in seen:
                    seen.add(link)
                    new_links.append(link)

            logger.info(
                "Found %d links on page %d (%d new unique)",
                len(raw_links),
                page_number,
                len(new_links),
            )
            if self._signals is not None:
                await self._signals.emit(
                    SignalType.PAGE_SCANNED,
                    {"page_number": page_number, "raw": len(raw_links), "new": len(new_links)},
                )

            if new_links:
                pages.append(PageLinks(page_number=page_number, links=new_links))

            if not raw_links:
                logger.info("No links on page %d, listing exhausted", page_number)
                break

        logger.info("Total unique links across all pages: %d", len(seen))
        return pages


class BrowserLinkSource:
    """Reads listing pages in a single browser page, rejecting cookie consent once."""

    def __init__(
        self,
        page: Page,
        config: DiscoveryConfig | None = None,
        timeouts: TimeoutConfig | None = None,
    ) -> None:
        self._page = page
        self._config = config or DiscoveryConfig()
        self._timeouts = timeouts or TimeoutConfig()
        self._consent_handled = False

    async def fetch_links(self, url: str) -> list[str]:
        result = await BrowserLayer.navigate(
            self._page, url, timeout_ms=self._timeouts.page_load_timeout_s * 1000
        )
        if not result.ok:
            raise RuntimeError(f"Failed to load listing page {url}: {result.detail}")

        if not self._consent_handled:
            self._consent_handled = True
            await dismiss_consent(
                self._page,
                [self._config.consent_selector],
                timeout_ms=self._timeouts.consent_timeout_s * 1000,
            )

        if self._timeouts.listing_settle_ms > 0:
            await asyncio.sleep(self._timeouts.listing_settle_ms / 1000.0)

        hrefs = await self._page.eval_on_selector_all(
            self._config.link_selector,
            "anchors => anchors.map(a => a.href)",
        )
        return [href for href in hrefs if isinstance(href, str) and href.startswith("http")]
