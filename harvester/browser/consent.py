"""Cookie consent handling — reject the banner once so listing links are reachable."""

from __future__ import annotations

import logging
from typing import Sequence

from playwright.async_api import Page

from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

# Known "reject all" buttons from common consent management platforms.
CONSENT_REJECT_SELECTORS = [
    "#onetrust-reject-all-handler",
    ".onetrust-reject-all-handler",
    "#CybotCookiebotDialogBodyButtonDecline",
    '[id*="cookie"] [class*="reject"]',
    '[id*="consent"] [class*="reject"]',
    '[aria-label*="reject" i][aria-label*="cookie" i]',
]


async def dismiss_consent(
    page: Page,
    selectors: Sequence[str] = tuple(CONSENT_REJECT_SELECTORS),
    timeout_ms: int = 4000,
    settle_ms: int = 1000,
) -> bool:
    """Click the first consent-reject button that appears within the timeout.

    Best effort: returns False when no banner shows up.
    """
    combined = ", ".join(selectors)
    try:
        button = await page.wait_for_selector(combined, timeout=timeout_ms)
        if button is None:
            return False
        await button.click()
        if settle_ms > 0:
            await page.wait_for_timeout(settle_ms)
        logger.info("Rejected cookie consent banner")
        return True
    except Exception as exc:
        emit_structured_error(
            logger,
            code=ErrorCode.CONSENT_NOT_FOUND,
            message="Cookie consent banner not found or already handled",
            suppressed=True,
            details={"error": str(exc)[:200]},
            level=logging.DEBUG,
        )
        return False
