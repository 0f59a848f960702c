"""Checkpointed job runner — resumable batch processing over a JSON checkpoint.

The job is a small finite state machine:

    LOADING -> RUNNING -> DONE
        \\          \\
         +-> FAILED  +-> FAILED

LOADING reads the previous snapshot (a corrupt one counts as empty).
RUNNING processes only the identifiers missing from that snapshot, one
fixed-size batch at a time; after every batch the whole state is written back
to disk before the next batch starts. DONE applies the final stable sort and
writes the snapshot once more.

Batches never overlap, so the in-memory state and the checkpoint file are
only touched between batch boundaries and need no lock. Killing the process
at any point loses at most the batch in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from pydantic import BaseModel

from harvester.config.settings import BatchConfig, RetryConfig
from harvester.pipeline.checkpoint import CheckpointStore
from harvester.runner.batch import chunked, run_batched
from harvester.runner.outcome import Failure, Outcome, Success, WorkItem, dedupe_items
from harvester.runner.phases import TERMINAL_PHASES, VALID_TRANSITIONS, JobPhase
from harvester.runner.retry import RetryPolicy
from harvester.signals.emitter import SignalEmitter
from harvester.signals.types import SignalType
from harvester.telemetry.errors import HarvesterError

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

ToRecord = Callable[[WorkItem[Any], Outcome], RecordT]
SortKey = Callable[[RecordT], float]


class JobError(HarvesterError):
    """Raised when a job cannot continue for a reason outside any single item."""


@dataclass(frozen=True)
class JobState(Generic[RecordT]):
    """Everything processed so far, in insertion order."""

    records: tuple[RecordT, ...] = ()
    completed_keys: frozenset[str] = frozenset()

    @classmethod
    def from_records(
        cls, records: Sequence[RecordT], key_of: Callable[[RecordT], str]
    ) -> "JobState[RecordT]":
        return cls(records=tuple(records), completed_keys=frozenset(key_of(r) for r in records))

    def with_records(
        self, new_records: Sequence[RecordT], key_of: Callable[[RecordT], str]
    ) -> "JobState[RecordT]":
        fresh = [r for r in new_records if key_of(r) not in self.completed_keys]
        return JobState(
            records=self.records + tuple(fresh),
            completed_keys=self.completed_keys | {key_of(r) for r in fresh},
        )

    def sorted_by(self, sort_key: Callable[[RecordT], float]) -> "JobState[RecordT]":
        # sorted() stays stable with reverse=True: ties keep insertion order.
        return JobState(
            records=tuple(sorted(self.records, key=sort_key, reverse=True)),
            completed_keys=self.completed_keys,
        )


@dataclass
class JobReport(Generic[RecordT]):
    """Summary of one job run."""

    name: str
    run_id: str
    phase: JobPhase
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    duration_s: float = 0.0
    records: list[RecordT] = field(default_factory=list)


class CheckpointedJob(Generic[RecordT]):
    """Runs ``operation`` over work items, checkpointing after every batch.

    ``operation`` receives a ``WorkItem`` and returns the stage payload (or
    raises). Each call is wrapped by the retry policy; ``to_record`` turns the
    final ``Outcome`` into the record stored in the checkpoint. Both stages of
    the harvester (extraction and scoring) are instances of this class.
    """

    def __init__(
        self,
        name: str,
        store: CheckpointStore[RecordT],
        operation: Callable[[WorkItem[Any]], Awaitable[Any]],
        to_record: ToRecord,
        *,
        batch: BatchConfig | None = None,
        retry: RetryConfig | None = None,
        sort_key: SortKey | None = None,
        signals: SignalEmitter | None = None,
    ) -> None:
        self._name = name
        self._run_id = f"{name}_{uuid.uuid4().hex[:12]}"
        self._store = store
        self._operation = operation
        self._to_record = to_record
        self._batch = batch or BatchConfig()
        self._sort_key = sort_key
        self._signals = signals or SignalEmitter(run_id=self._run_id)
        self._phase = JobPhase.LOADING
        self._retry = RetryPolicy.from_config(
            retry or RetryConfig(max_retries=0, retry_delay_s=0.0),
            on_retry=self._on_retry,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def phase(self) -> JobPhase:
        return self._phase

    @property
    def signals(self) -> SignalEmitter:
        return self._signals

    # --- Phase Transition ---

    async def _transition(self, to_phase: JobPhase, context: dict[str, Any] | None = None) -> None:
        if to_phase not in VALID_TRANSITIONS.get(self._phase, set()):
            raise JobError(f"Invalid transition: {self._phase.value} -> {to_phase.value}")

        from_phase = self._phase
        self._phase = to_phase
        await self._signals.emit_phase_transition(
            from_phase=from_phase.value,
            to_phase=to_phase.value,
            context={"job": self._name, **(context or {})},
        )

    async def _on_retry(self, key: str, attempt: int, error: BaseException) -> None:
        await self._signals.emit(
            SignalType.RETRY_ATTEMPT,
            {
                "key": key,
                "attempt_number": attempt,
                "max_attempts": self._retry.max_attempts,
                "reason": str(error),
            },
        )

    # --- Steps ---

    def load(self) -> JobState[RecordT]:
        """LOADING: read the previous snapshot."""
        records = self._store.load()
        if records:
            logger.info("[%s] Restored %d previous results from %s", self._name, len(records), self._store.path)
        return JobState.from_records(records, self._store.key_of)

    def pending(
        self, state: JobState[RecordT], items: Sequence[WorkItem[Any]]
    ) -> list[WorkItem[Any]]:
        return [item for item in dedupe_items(items) if item.key not in state.completed_keys]

    async def _process(self, item: WorkItem[Any]) -> Outcome:
        return await self._retry.call(item.key, self._operation, item)

    async def run_batch(
        self,
        state: JobState[RecordT],
        batch: Sequence[WorkItem[Any]],
        number: int,
        total: int,
    ) -> tuple[JobState[RecordT], list[Outcome]]:
        """Process one batch, then persist the whole resulting state."""
        logger.info("[%s] Batch %d/%d: processing %d items", self._name, number, total, len(batch))
        await self._signals.emit(
            SignalType.BATCH_STARTED,
            {"batch_number": number, "total_batches": total, "size": len(batch)},
        )

        outcomes = await run_batched(
            batch,
            self._batch.concurrency,
            self._process,
            stagger_s=self._batch.stagger_ms / 1000.0,
            chunk_delay_s=self._batch.chunk_delay_s,
        )

        by_key = {item.key: item for item in batch}
        records = [self._to_record(by_key[outcome.key], outcome) for outcome in outcomes]
        state = state.with_records(records, self._store.key_of)
        written = self._store.save(state.records)

        for outcome in outcomes:
            if isinstance(outcome, Success):
                await self._signals.emit(
                    SignalType.ITEM_COMPLETED,
                    {"key": outcome.key, "attempts": outcome.attempts},
                )
            else:
                await self._signals.emit(
                    SignalType.ITEM_FAILED,
                    {"key": outcome.key, "reason": outcome.reason, "attempts": outcome.attempts},
                )
        await self._signals.emit(
            SignalType.CHECKPOINT_PERSISTED,
            {"batch_number": number, "records": written, "path": str(self._store.path)},
        )
        succeeded = sum(1 for outcome in outcomes if isinstance(outcome, Success))
        logger.info(
            "[%s] Batch %d/%d complete: %d succeeded, %d failed, %d records checkpointed",
            self._name,
            number,
            total,
            succeeded,
            len(outcomes) - succeeded,
            written,
        )
        return state, outcomes

    def finish(self, state: JobState[RecordT]) -> JobState[RecordT]:
        """DONE: final ordering and one more full write."""
        if self._sort_key is not None:
            state = state.sorted_by(self._sort_key)
        self._store.save(state.records)
        return state

    # --- Main Run Loop ---

    async def run(self, items: Sequence[WorkItem[Any]]) -> JobReport[RecordT]:
        if self._phase in TERMINAL_PHASES:
            raise JobError(f"Job {self._run_id} already finished in phase {self._phase.value}")

        start = time.monotonic()
        report: JobReport[RecordT] = JobReport(name=self._name, run_id=self._run_id, phase=self._phase)

        try:
            state = self.load()
            pending = self.pending(state, items)
            report.skipped = len(dedupe_items(items)) - len(pending)
            await self._transition(
                JobPhase.RUNNING,
                {"restored": len(state.records), "pending": len(pending)},
            )

            if not pending:
                logger.info("[%s] Nothing to do: all %d items already processed", self._name, report.skipped)

            batches = list(chunked(pending, self._batch.batch_size))
            for index, batch in enumerate(batches):
                state, outcomes = await self.run_batch(state, batch, index + 1, len(batches))
                report.batches += 1
                report.processed += len(outcomes)
                report.succeeded += sum(1 for o in outcomes if isinstance(o, Success))
                report.failed += sum(1 for o in outcomes if isinstance(o, Failure))

                if index < len(batches) - 1 and self._batch.batch_delay_s > 0:
                    await asyncio.sleep(self._batch.batch_delay_s)

            state = self.finish(state)
            await self._transition(JobPhase.DONE, {"records": len(state.records)})
        except Exception as exc:
            if self._phase not in TERMINAL_PHASES:
                failed_in = self._phase.value
                await self._transition(JobPhase.FAILED, {"reason": str(exc)})
                await self._signals.emit_run_failed(str(exc), failed_in)
            raise JobError(f"[{self._name}] job failed: {exc}") from exc

        report.phase = self._phase
        report.records = list(state.records)
        report.duration_s = round(time.monotonic() - start, 2)
        await self._signals.emit_run_complete(
            processed=report.processed,
            failed=report.failed,
            total_duration_s=report.duration_s,
        )
        return report
