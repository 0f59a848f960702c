"""Signal type definitions for job observability."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalType(str, Enum):
    """All signal types emitted while harvesting and scoring."""

    PHASE_TRANSITION = "PHASE_TRANSITION"
    PAGE_SCANNED = "PAGE_SCANNED"
    BATCH_STARTED = "BATCH_STARTED"
    ITEM_COMPLETED = "ITEM_COMPLETED"
    ITEM_FAILED = "ITEM_FAILED"
    RETRY_ATTEMPT = "RETRY_ATTEMPT"
    CHECKPOINT_PERSISTED = "CHECKPOINT_PERSISTED"
    RUN_COMPLETE = "RUN_COMPLETE"
    RUN_FAILED = "RUN_FAILED"


class Signal(BaseModel):
    """An immutable signal emitted during a job run."""

    sequence: int = Field(description="Monotonic sequence number within the run")
    signal_type: SignalType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
