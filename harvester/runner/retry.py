"""Fixed-delay retry policy for a single remote call."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from harvester.config.settings import RetryConfig
from harvester.runner.outcome import Failure, Outcome, Success
from harvester.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

RetryHook = Callable[[str, int, BaseException], Awaitable[None]]


class RetryPolicy:
    """Calls an operation up to ``max_retries + 1`` times with a fixed delay.

    Exhaustion is not an exception: the caller gets a ``Failure`` carrying the
    last error message and the number of attempts consumed.
    """

    def __init__(
        self,
        max_retries: int = 3,
        delay_s: float = 5.0,
        on_retry: RetryHook | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.delay_s = delay_s
        self._on_retry = on_retry

    @classmethod
    def from_config(cls, config: RetryConfig, on_retry: RetryHook | None = None) -> "RetryPolicy":
        return cls(max_retries=config.max_retries, delay_s=config.retry_delay_s, on_retry=on_retry)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    async def call(
        self,
        key: str,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Outcome:
        attempt = 0
        last_error: BaseException | None = None

        while attempt < self.max_attempts:
            attempt += 1
            try:
                result = await operation(*args)
                return Success(key=key, payload=result, attempts=attempt)
            except Exception as exc:
                last_error = exc

            if attempt < self.max_attempts:
                logger.info(
                    "Retry %d/%d for %s in %.1fs: %s",
                    attempt,
                    self.max_retries,
                    key,
                    self.delay_s,
                    last_error,
                )
                if self._on_retry is not None:
                    await self._on_retry(key, attempt, last_error)
                await asyncio.sleep(self.delay_s)

        reason = str(last_error) or type(last_error).__name__
        emit_structured_error(
            logger,
            code=ErrorCode.RETRIES_EXHAUSTED,
            message=reason,
            suppressed=True,
            details={"key": key, "attempts": attempt},
        )
        return Failure(key=key, reason=reason, attempts=attempt)
