"""Browser Layer — one shared Playwright Chromium, one scoped page per work item.

The layer renders pages and performs interactions; it makes no decisions.
Callers borrow a page with ``open_page()`` and the page is closed on every
exit path, including errors and cancellation.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from harvester.config.settings import BrowserConfig
from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class ActionResult:
    """Result of a browser action."""

    status: ActionStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.SUCCESS


class BrowserLayer:
    """Playwright-based browser layer shared by discovery and extraction.

    Contract:
    - ``start()`` launches Chromium and one browsing context (shared cookies)
    - ``open_page()`` hands out a fresh page and always closes it
    - interactions return typed ``ActionResult`` values instead of raising
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    async def start(self) -> None:
        """Launch the browser and create the shared context."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._config.headless,
            executable_path=self._config.executable_path,
            args=_LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(
            viewport={
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            },
            user_agent=self._config.user_agent,
            locale=self._config.locale,
        )

    async def stop(self) -> None:
        """Clean up browser resources."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserLayer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator[Page]:
        """Borrow a new page from the shared context for the duration of a block."""
        if self._context is None:
            raise RuntimeError("Browser not started")
        page = await self._context.new_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.BROWSER_CLEANUP_FAILED,
                    message=str(exc),
                    suppressed=True,
                    level=logging.WARNING,
                )

    @staticmethod
    async def navigate(page: Page, url: str, timeout_ms: int = 60000) -> ActionResult:
        """Navigate to a URL and wait for the DOM to be ready."""
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            return ActionResult(status=ActionStatus.SUCCESS, detail=f"Navigated to {url}")
        except Exception as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))

    @staticmethod
    async def click(page: Page, selector: str, wait_after_ms: int = 500) -> ActionResult:
        """Click the first element matching ``selector`` if it exists."""
        try:
            element = await page.query_selector(selector)
            if element is None:
                return ActionResult(status=ActionStatus.FAILURE, detail=f"{selector} not found")
            await element.scroll_into_view_if_needed()
            await element.click()
            if wait_after_ms > 0:
                await page.wait_for_timeout(wait_after_ms)
            return ActionResult(status=ActionStatus.SUCCESS, detail=f"Clicked {selector}")
        except Exception as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))

    @staticmethod
    async def wait_for(page: Page, selector: str, timeout_ms: int = 3000) -> ActionResult:
        """Wait for an element to appear in DOM."""
        try:
            await page.wait_for_selector(selector, timeout=timeout_ms)
            return ActionResult(
                status=ActionStatus.SUCCESS,
                detail=f"Element {selector} appeared",
            )
        except Exception as e:
            return ActionResult(status=ActionStatus.TIMEOUT, detail=str(e))
