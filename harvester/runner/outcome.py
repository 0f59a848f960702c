"""Work items and per-item outcomes shared by every batch job."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterable, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class WorkItem(Generic[T]):
    """One unit of work. Identity is ``key``; ``group`` is an optional tag (page number)."""

    key: str
    payload: T
    group: int | None = None


@dataclass(frozen=True)
class Success:
    key: str
    payload: Any
    attempts: int = 1


@dataclass(frozen=True)
class Failure:
    key: str
    reason: str
    attempts: int = 1


Outcome = Union[Success, Failure]


def dedupe_items(items: Iterable[WorkItem[T]]) -> list[WorkItem[T]]:
    """Keep the first occurrence of every key, preserving order."""
    seen: set[str] = set()
    unique: list[WorkItem[T]] = []
    for item in items:
        if item.key in seen:
            continue
        seen.add(item.key)
        unique.append(item)
    return unique
