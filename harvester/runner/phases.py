"""Checkpointed job phases — the finite state machine states and transitions."""

from __future__ import annotations

from enum import Enum


class JobPhase(str, Enum):
    """A job loads its checkpoint, runs pending batches, then finishes."""

    LOADING = "LOADING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


VALID_TRANSITIONS: dict[JobPhase, set[JobPhase]] = {
    JobPhase.LOADING: {JobPhase.RUNNING, JobPhase.FAILED},
    JobPhase.RUNNING: {JobPhase.DONE, JobPhase.FAILED},
    JobPhase.DONE: set(),  # terminal
    JobPhase.FAILED: set(),  # terminal
}

TERMINAL_PHASES = {JobPhase.DONE, JobPhase.FAILED}
