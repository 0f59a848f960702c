"""Extraction data models — one profile per detail page, every field optional."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_WHITESPACE = re.compile(r"\s+")
_FIRST_INT = re.compile(r"\d+")


class CamelModel(BaseModel):
    """Checkpoint rows use camelCase keys on disk and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractionRecord(CamelModel):
    """Structured fields scraped from a profile page.

    A missing field is a normal result: text fields fall back to "" and the
    rest to None. Only a page that cannot be loaded at all is an error.
    """

    name: str = ""
    rating: float | None = None
    review_count: int | None = None
    about_text: str = ""
    extended_about: str | None = None
    avatar: str | None = None

    @property
    def missing_fields(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value in (None, "")]


class ScrapeResult(CamelModel):
    """Extraction-stage checkpoint row."""

    url: str
    data: ExtractionRecord | None = None
    error: str | None = None
    page_number: int | None = Field(default=None, ge=1)

    @property
    def succeeded(self) -> bool:
        return self.data is not None


def clean_text(text: str | None) -> str:
    """Collapse newlines, tabs and repeated spaces into single spaces."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def parse_rating(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw.strip().replace(",", "."))
    except ValueError:
        return None


def parse_review_count(raw: str | None) -> int | None:
    match = _FIRST_INT.search(raw or "")
    return int(match.group(0)) if match else None


def normalize_avatar(raw: str | None) -> str | None:
    if not raw or not raw.strip():
        return None
    raw = raw.strip()
    if raw.startswith("//"):
        return f"https:{raw}"
    return raw
