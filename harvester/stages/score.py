"""Scoring stage — rate every extracted profile against the rubric, resumably."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from harvester.ai_engine.schemas import (
    PatientProfile,
    ScoreRecord,
    ScoreResult,
    TherapistCriteria,
)
from harvester.config.settings import ScoringConfig
from harvester.pipeline.checkpoint import CheckpointStore
from harvester.pipeline.extraction import ScrapeResult
from harvester.runner.job import CheckpointedJob, JobReport
from harvester.runner.outcome import Outcome, Success, WorkItem
from harvester.signals.emitter import SignalEmitter

logger = logging.getLogger(__name__)


class Scorer(Protocol):
    async def score(
        self, profile_text: str, patient: PatientProfile, criteria: TherapistCriteria
    ) -> ScoreRecord: ...


@dataclass
class ScoringSummary:
    report: JobReport[ScoreResult]
    names: dict[str, str]

    @property
    def results(self) -> list[ScoreResult]:
        return self.report.records

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def succeeded(self) -> int:
        return len(self.results) - self.failed

    def top(self, n: int) -> list[ScoreResult]:
        return self.results[:n]


def format_profile_text(result: ScrapeResult) -> str:
    """Render an extracted profile as the plain text the scorer reads."""
    data = result.data
    if data is None:
        raise ValueError(f"{result.url} has no extracted data")

    rating = f"{data.rating:g}/5" if data.rating is not None else "N/A"
    reviews = f"{data.review_count} reviews" if data.review_count is not None else "no reviews"
    parts = [
        f"Name: {data.name}",
        f"Rating: {rating} ({reviews})",
        f"URL: {result.url}",
        "",
        data.about_text,
        "",
        data.extended_about or "",
    ]
    return "\n".join(parts).strip()


def load_extraction_results(path: Path) -> list[ScrapeResult]:
    if not path.exists():
        raise FileNotFoundError(f"Extraction results not found: {path}")
    return CheckpointStore(path, ScrapeResult).load()


def to_score_result(item: WorkItem[ScrapeResult], outcome: Outcome) -> ScoreResult:
    if isinstance(outcome, Success):
        return ScoreResult.from_score(item.key, outcome.payload)
    return ScoreResult.failure(item.key, outcome.reason)


def format_top_results(summary: ScoringSummary, n: int = 5) -> str:
    report = summary.report
    lines = [
        "=== ANALYSIS COMPLETE ===",
        f"Profiles in checkpoint: {len(summary.results)}",
        f"Successful: {summary.succeeded}",
        f"Failed: {summary.failed}",
        f"Processed this run: {report.processed} ({report.succeeded} successful, "
        f"{report.failed} failed, {report.skipped} already done)",
        "",
        f"Top {n}:",
    ]
    for rank, result in enumerate(summary.top(n), start=1):
        name = summary.names.get(result.url, "Unknown")
        lines.append(f"{rank}. {name} - Score: {result.score:g}/100")
        lines.append(f"   {result.reasoning.summary}")
    if summary.failed:
        lines.append(f"{summary.failed} profiles could not be scored (score 0, see 'error').")
    return "\n".join(lines)


async def run_scoring(
    config: ScoringConfig,
    scorer: Scorer,
    patient: PatientProfile,
    criteria: TherapistCriteria,
    *,
    extraction_path: Path | None = None,
    output_path: Path | None = None,
    signals: SignalEmitter | None = None,
) -> ScoringSummary:
    """Score every successfully extracted profile not already in the output file."""
    extraction_path = extraction_path or config.pipeline.extraction_path
    output_path = output_path or config.pipeline.scoring_path

    profiles = load_extraction_results(extraction_path)
    scorable = [p for p in profiles if p.data is not None]
    logger.info(
        "Loaded %d profiles from %s (%d without data skipped)",
        len(profiles),
        extraction_path,
        len(profiles) - len(scorable),
    )

    items = [WorkItem(key=p.url, payload=p, group=p.page_number) for p in scorable]
    names = {p.url: p.data.name for p in scorable}

    async def operation(item: WorkItem[ScrapeResult]) -> ScoreRecord:
        name = names.get(item.key) or item.key
        logger.info("Analyzing: %s", name)
        record = await scorer.score(format_profile_text(item.payload), patient, criteria)
        logger.info("Analysis complete for %s: %g/100", name, record.score)
        return record

    job = CheckpointedJob(
        "score",
        CheckpointStore(output_path, ScoreResult),
        operation,
        to_score_result,
        batch=config.batch,
        retry=config.retry,
        sort_key=lambda result: result.score,
        signals=signals,
    )
    report = await job.run(items)
    return ScoringSummary(report=report, names=names)
