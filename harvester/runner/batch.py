"""Bounded batch runner — chunked concurrency with a barrier per chunk.

Items are split into chunks of ``concurrency``. A chunk's members are
launched with a small positional stagger, awaited together, and only then
does the next chunk start. Peak concurrency is therefore the chunk size; a
slow member holds back the following chunk.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterator, Sequence, TypeVar

from harvester.runner.outcome import Failure, Outcome, Success, WorkItem
from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

ItemOperation = Callable[[WorkItem[Any]], Awaitable[Any]]


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def _run_guarded(
    item: WorkItem[Any],
    operation: ItemOperation,
    launch_delay_s: float,
) -> Outcome:
    if launch_delay_s > 0:
        await asyncio.sleep(launch_delay_s)
    try:
        result = await operation(item)
    except Exception as exc:
        emit_structured_error(
            logger,
            code=ErrorCode.ITEM_FETCH_FAILED,
            message=f"Item {item.key} failed: {exc}",
            suppressed=True,
            details={"key": item.key, "error_type": type(exc).__name__},
            level=logging.WARNING,
        )
        return Failure(key=item.key, reason=str(exc) or type(exc).__name__, attempts=1)

    # Operations that already apply a retry policy return an Outcome themselves.
    if isinstance(result, (Success, Failure)):
        return result
    return Success(key=item.key, payload=result)


async def run_batched(
    items: Sequence[WorkItem[Any]],
    concurrency: int,
    operation: ItemOperation,
    *,
    stagger_s: float = 0.0,
    chunk_delay_s: float = 0.0,
) -> list[Outcome]:
    """Run ``operation`` over ``items`` with at most ``concurrency`` in flight.

    Returns exactly one outcome per input item. A failing item never cancels
    its siblings or the chunk.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    outcomes: list[Outcome] = []
    chunks = list(chunked(items, concurrency))

    for index, chunk in enumerate(chunks):
        results = await asyncio.gather(
            *(
                _run_guarded(item, operation, position * stagger_s)
                for position, item in enumerate(chunk)
            )
        )
        outcomes.extend(results)

        if chunk_delay_s > 0 and index < len(chunks) - 1:
            await asyncio.sleep(chunk_delay_s)

    return outcomes
