"""Field strategies — ordered selector fallbacks for each profile field.

Each field owns a list of named strategies. They are tried in order and the
first one that yields a non-empty parsed value wins. A strategy that finds
nothing, or errors, is simply a miss.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from playwright.async_api import Page

from harvester.pipeline.extraction import (
    clean_text,
    normalize_avatar,
    parse_rating,
    parse_review_count,
)
from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

Parser = Callable[[str | None], Any]


@dataclass(frozen=True)
class SelectorStrategy:
    """Read text (or an attribute) from the first element matching ``selector``."""

    name: str
    selector: str
    attribute: str | None = None

    async def resolve(self, page: Page) -> str | None:
        element = await page.query_selector(self.selector)
        if element is None:
            return None
        if self.attribute:
            return await element.get_attribute(self.attribute)
        return await element.text_content()


@dataclass(frozen=True)
class RevealStep:
    """An interaction that must happen before a field's content is in the DOM.

    ``wait_for`` bounds how long to wait for the revealed content. When
    ``required`` is set, a failed reveal means the field is absent.
    """

    trigger: str
    wait_for: str | None = None
    required: bool = False


def _optional_text(raw: str | None) -> str | None:
    return clean_text(raw) or None


FIELD_PARSERS: dict[str, Parser] = {
    "name": clean_text,
    "avatar": normalize_avatar,
    "rating": parse_rating,
    "review_count": parse_review_count,
    "about_text": clean_text,
    "extended_about": _optional_text,
}

DEFAULT_FIELD_STRATEGIES: dict[str, list[SelectorStrategy]] = {
    "name": [
        SelectorStrategy("header-name", ".unified-doctor-header-info__name"),
        SelectorStrategy("first-heading", "h1"),
    ],
    "avatar": [
        SelectorStrategy("header-avatar-link", ".unified-doctor-header-info__avatar", "href"),
        SelectorStrategy("header-avatar-img", ".unified-doctor-header-info__avatar img", "src"),
    ],
    "rating": [
        SelectorStrategy("rating-score", "u.rating", "data-score"),
    ],
    "review_count": [
        SelectorStrategy("rating-label", "u.rating > span:nth-child(1)"),
    ],
    "about_text": [
        SelectorStrategy(
            "about-short-description",
            "#about-section div[data-test-id='doctor-about-description-short']",
        ),
        SelectorStrategy("about-itemprop", "#about-section div[itemprop='description']"),
        SelectorStrategy("about-section", "#about-section"),
    ],
    "extended_about": [
        SelectorStrategy("about-modal", ".about-details-modal"),
    ],
}

DEFAULT_REVEAL_STEPS: dict[str, RevealStep] = {
    "about_text": RevealStep(trigger=".about-item > a:nth-child(2)"),
    "extended_about": RevealStep(
        trigger=(
            "#about-section button.btn-block, "
            "#about-section button[data-test-id='doctor-about-description-show-more']"
        ),
        wait_for=".about-details-modal",
        required=True,
    ),
}


async def resolve_field(
    page: Page,
    field_name: str,
    strategies: list[SelectorStrategy],
    parse: Parser,
) -> Any:
    """Return the first non-empty value produced by ``strategies``, else None."""
    for strategy in strategies:
        try:
            raw = await strategy.resolve(page)
        except Exception as exc:
            logger.debug("Strategy %s for %s errored: %s", strategy.name, field_name, exc)
            continue
        value = parse(raw)
        if value not in (None, ""):
            logger.debug("Field %s resolved by %s", field_name, strategy.name)
            return value

    emit_structured_error(
        logger,
        code=ErrorCode.FIELD_NOT_FOUND,
        message=f"{field_name} not found",
        suppressed=True,
        details={"strategies": [s.name for s in strategies]},
        level=logging.DEBUG,
    )
    return None
