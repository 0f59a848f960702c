"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class HarvesterError(Exception):
    """Base class for errors raised by the harvester."""


class ErrorCode(str, Enum):
    """Canonical error codes for degraded paths."""

    PAGE_FETCH_FAILED = "PAGE_FETCH_FAILED"
    ITEM_FETCH_FAILED = "ITEM_FETCH_FAILED"
    FIELD_NOT_FOUND = "FIELD_NOT_FOUND"
    REVEAL_TIMEOUT = "REVEAL_TIMEOUT"
    CONSENT_NOT_FOUND = "CONSENT_NOT_FOUND"
    REMOTE_CALL_FAILED = "REMOTE_CALL_FAILED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    CHECKPOINT_CORRUPT = "CHECKPOINT_CORRUPT"
    SIGNAL_SUBSCRIBER_FAILURE = "SIGNAL_SUBSCRIBER_FAILURE"
    BROWSER_CLEANUP_FAILED = "BROWSER_CLEANUP_FAILED"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    run_id: str | None = None,
    phase: str | None = None,
    details: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Emit a structured telemetry event via logging.

    Suppressed errors were converted into a degraded result and did not
    propagate; callers lower ``level`` for expected absences.
    """
    logger.log(
        level,
        "harvester_error %s: %s",
        code.value,
        message,
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "run_id": run_id,
            "phase": phase,
            "details": details or {},
        },
    )
