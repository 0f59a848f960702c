"""Profile extractor — loads one detail page and reads every field independently."""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Page

from harvester.browser.layer import BrowserLayer
from harvester.config.settings import TimeoutConfig
from harvester.pipeline.extraction import ExtractionRecord
from harvester.pipeline.strategies import (
    DEFAULT_FIELD_STRATEGIES,
    DEFAULT_REVEAL_STEPS,
    FIELD_PARSERS,
    RevealStep,
    SelectorStrategy,
    resolve_field,
)
from harvester.telemetry.errors import ErrorCode, HarvesterError, emit_structured_error

logger = logging.getLogger(__name__)


class FetchError(HarvesterError):
    """The detail page could not be loaded at all."""


class ProfileExtractor:
    """Extracts an ``ExtractionRecord`` from a profile URL.

    Only navigation failure raises (``FetchError``). A field that cannot be
    found is left empty, and a reveal interaction that does not produce its
    content within the timeout leaves that optional field absent.
    """

    def __init__(
        self,
        browser: BrowserLayer,
        timeouts: TimeoutConfig | None = None,
        strategies: dict[str, list[SelectorStrategy]] | None = None,
        reveal_steps: dict[str, RevealStep] | None = None,
    ) -> None:
        self._browser = browser
        self._timeouts = timeouts or TimeoutConfig()
        self._strategies = strategies or DEFAULT_FIELD_STRATEGIES
        self._reveal_steps = DEFAULT_REVEAL_STEPS if reveal_steps is None else reveal_steps

    async def extract(self, url: str) -> ExtractionRecord:
        async with self._browser.open_page() as page:
            result = await self._browser.navigate(
                page, url, timeout_ms=self._timeouts.page_load_timeout_s * 1000
            )
            if not result.ok:
                raise FetchError(f"Failed to load {url}: {result.detail}")

            record = await self.extract_from_page(page)
            logger.info("Scraped: %s", record.name or url)
            return record

    async def extract_from_page(self, page: Page) -> ExtractionRecord:
        values: dict[str, Any] = {}
        for field_name, strategies in self._strategies.items():
            step = self._reveal_steps.get(field_name)
            if step is not None:
                revealed = await self._reveal(page, field_name, step)
                if step.required and not revealed:
                    continue

            parse = FIELD_PARSERS.get(field_name, lambda raw: raw)
            value = await resolve_field(page, field_name, strategies, parse)
            if value is not None:
                values[field_name] = value

        return ExtractionRecord(**values)

    async def _reveal(self, page: Page, field_name: str, step: RevealStep) -> bool:
        clicked = await self._browser.click(page, step.trigger, wait_after_ms=self._timeouts.settle_ms)
        if not clicked.ok:
            logger.debug("No reveal trigger for %s: %s", field_name, clicked.detail)
            return False
        if step.wait_for is None:
            return True

        waited = await self._browser.wait_for(
            page, step.wait_for, timeout_ms=self._timeouts.reveal_timeout_s * 1000
        )
        if not waited.ok:
            emit_structured_error(
                logger,
                code=ErrorCode.REVEAL_TIMEOUT,
                message=f"{field_name} did not appear within {self._timeouts.reveal_timeout_s}s",
                suppressed=True,
                details={"selector": step.wait_for},
                level=logging.INFO,
            )
            return False
        return True
