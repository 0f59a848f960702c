"""Tests for the scoring stage wiring."""

import json
import logging

import pytest

from fakes import FakeVertexClient, score_payload
from harvester.ai_engine.engine import ScoringEngine
from harvester.ai_engine.rubric import DEFAULT_CRITERIA, DEFAULT_PATIENT_PROFILE
from harvester.ai_engine.schemas import Confidence, ScoreReasoning, ScoreRecord
from harvester.config.settings import BatchConfig, PipelineConfig, RetryConfig, ScoringConfig, VertexConfig
from harvester.pipeline.extraction import ExtractionRecord, ScrapeResult
from harvester.stages.score import (
    format_profile_text,
    format_top_results,
    load_extraction_results,
    run_scoring,
)


def _config(tmp_path, retries=3):
    return ScoringConfig(
        vertex=VertexConfig(project_id="p"),
        pipeline=PipelineConfig(data_dir=tmp_path),
        batch=BatchConfig(batch_size=2, concurrency=2, batch_delay_s=0),
        retry=RetryConfig(max_retries=retries, retry_delay_s=0),
    )


def _write_extractions(path, rows):
    path.write_text(json.dumps([row.model_dump(by_alias=True) for row in rows]))


def _profile(url, name, about="Gestalt"):
    return ScrapeResult(url=url, data=ExtractionRecord(name=name, rating=4.5, review_count=10, about_text=about), page_number=1)


class _ScriptedScorer:
    """Scores by a fixed table keyed on the profile name; raises for names in ``fail``."""

    def __init__(self, scores, fail=()):
        self.scores = scores
        self.fail = set(fail)
        self.calls = []

    async def score(self, profile_text, patient, criteria):
        name = profile_text.splitlines()[0].removeprefix("Name: ")
        self.calls.append(name)
        if name in self.fail:
            raise ConnectionError("503 Service Unavailable")
        return ScoreRecord(
            score=self.scores[name],
            reasoning=ScoreReasoning(summary=f"{name} summary"),
            confidence=Confidence.MEDIUM,
        )


class TestFormatting:
    def test_profile_text(self):
        result = ScrapeResult(
            url="https://x/a",
            data=ExtractionRecord(name="Dott. A", rating=4.9, review_count=12, about_text="Short", extended_about="Long"),
        )
        text = format_profile_text(result)
        assert text.splitlines()[:3] == ["Name: Dott. A", "Rating: 4.9/5 (12 reviews)", "URL: https://x/a"]
        assert "Short" in text
        assert text.endswith("Long")

    def test_profile_text_missing_rating(self):
        text = format_profile_text(ScrapeResult(url="u", data=ExtractionRecord(name="B")))
        assert "Rating: N/A (no reviews)" in text

    def test_profile_text_requires_data(self):
        with pytest.raises(ValueError):
            format_profile_text(ScrapeResult(url="u", error="Timeout"))

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_extraction_results(tmp_path / "nope.json")


class TestRunScoring:
    @pytest.mark.asyncio
    async def test_scores_sorted_and_failures_kept(self, tmp_path):
        extraction = tmp_path / "doctor-results.json"
        _write_extractions(
            extraction,
            [
                _profile("https://x/a", "A"),
                _profile("https://x/b", "B"),
                ScrapeResult(url="https://x/skip", error="Timeout"),
                _profile("https://x/c", "C"),
                _profile("https://x/d", "D"),
            ],
        )
        scorer = _ScriptedScorer({"A": 40, "B": 90, "D": 40}, fail={"C"})
        summary = await run_scoring(_config(tmp_path, retries=1), scorer, DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA)

        assert [r.url for r in summary.results] == ["https://x/b", "https://x/a", "https://x/d", "https://x/c"]
        failed = summary.results[-1]
        assert failed.score == 0
        assert failed.reasoning.summary == "ANALYSIS FAILED: 503 Service Unavailable"
        assert scorer.calls.count("C") == 2
        assert "Timeout" not in scorer.calls

        saved = json.loads((tmp_path / "analysis_results.json").read_text())
        assert [row["url"] for row in saved] == [r.url for r in summary.results]

    @pytest.mark.asyncio
    async def test_resume_skips_scored(self, tmp_path):
        extraction = tmp_path / "doctor-results.json"
        _write_extractions(extraction, [_profile("https://x/a", "A"), _profile("https://x/b", "B")])
        config = _config(tmp_path)

        await run_scoring(config, _ScriptedScorer({"A": 10, "B": 20}, fail={"B"}), DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA)
        second = _ScriptedScorer({"A": 99, "B": 20})
        summary = await run_scoring(config, second, DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA)

        # failures are checkpointed too, so nothing is rescored
        assert second.calls == []
        assert summary.report.skipped == 2

    @pytest.mark.asyncio
    async def test_top_results_report(self, tmp_path):
        extraction = tmp_path / "in.json"
        _write_extractions(extraction, [_profile("https://x/a", "A"), _profile("https://x/b", "B")])
        summary = await run_scoring(
            _config(tmp_path),
            _ScriptedScorer({"A": 55, "B": 75}),
            DEFAULT_PATIENT_PROFILE,
            DEFAULT_CRITERIA,
            extraction_path=extraction,
            output_path=tmp_path / "out.json",
        )
        report = format_top_results(summary, n=1)
        assert "1. B - Score: 75/100" in report
        assert "A -" not in report

    @pytest.mark.asyncio
    async def test_with_engine_and_retry(self, tmp_path):
        extraction = tmp_path / "doctor-results.json"
        _write_extractions(extraction, [_profile("https://x/a", "A")])
        client = FakeVertexClient(
            ConnectionError("429"), "not json", score_payload(score=67)
        )
        engine = ScoringEngine(VertexConfig(project_id="p"), client=client)

        summary = await run_scoring(_config(tmp_path), engine, DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA)

        assert len(client.calls) == 3
        assert summary.results[0].score == 67
        assert not summary.results[0].failed

    @pytest.mark.asyncio
    async def test_summary_separates_success_and_failure(self, tmp_path, caplog):
        extraction = tmp_path / "doctor-results.json"
        _write_extractions(extraction, [_profile("https://x/a", "A"), _profile("https://x/b", "B")])
        config = _config(tmp_path, retries=0)
        await run_scoring(config, _ScriptedScorer({"A": 60}, fail={"B"}), DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA)

        _write_extractions(
            extraction,
            [_profile("https://x/a", "A"), _profile("https://x/b", "B"), _profile("https://x/c", "C")],
        )
        with caplog.at_level(logging.INFO, logger="harvester.runner.job"):
            summary = await run_scoring(
                config, _ScriptedScorer({"C": 80}), DEFAULT_PATIENT_PROFILE, DEFAULT_CRITERIA
            )

        text = format_top_results(summary, n=3)
        assert "Profiles in checkpoint: 3" in text
        assert "Successful: 2" in text
        assert "Failed: 1" in text
        assert "Processed this run: 1 (1 successful, 0 failed, 2 already done)" in text
        assert "Batch 1/1 complete: 1 succeeded, 0 failed" in caplog.text
