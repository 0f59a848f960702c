"""Command line entry point: ``harvester scrape|score|rubric|serve``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from harvester.config.settings import (
    APIConfig,
    BatchConfig,
    ConfigurationError,
    DiscoveryConfig,
    PipelineConfig,
    ScoringConfig,
    ScrapeConfig,
    require_vertex_project,
)
from harvester.runner.job import JobError
from harvester.signals.emitter import SignalEmitter
from harvester.telemetry.errors import HarvesterError

logger = logging.getLogger("harvester")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _signals_for(stage: str, pipeline: PipelineConfig) -> SignalEmitter:
    return SignalEmitter(
        run_id=f"{stage}_{uuid.uuid4().hex[:12]}",
        ledger_path=pipeline.ledger_path,
    )


def _point_at(pipeline: PipelineConfig, path: Path, attr: str) -> None:
    pipeline.data_dir = path.parent
    setattr(pipeline, attr, path.name)


# --- Commands ---


def cmd_scrape(args: argparse.Namespace) -> int:
    from harvester.stages.scrape import format_scrape_summary, run_scrape

    config = ScrapeConfig()
    discovery = config.discovery.model_dump()
    if args.list_url:
        discovery["list_url"] = args.list_url
    if args.max_pages is not None:
        discovery["max_pages"] = args.max_pages
    config.discovery = DiscoveryConfig.model_validate(discovery)
    if args.concurrency is not None:
        config.batch = BatchConfig.model_validate(
            {**config.batch.model_dump(), "concurrency": args.concurrency, "batch_size": args.concurrency}
        )
    if args.output:
        _point_at(config.pipeline, Path(args.output), "extraction_file")
    if args.headed:
        config.browser.headless = False
    _configure_logging(config.log_level)

    logger.info("Starting profile extraction from %s", config.discovery.list_url)
    summary = asyncio.run(run_scrape(config, _signals_for("scrape", config.pipeline)))
    print(format_scrape_summary(summary))
    print(f"Results saved to {config.pipeline.extraction_path}")
    return 0


def cmd_score(args: argparse.Namespace) -> int:
    from harvester.ai_engine.engine import ScoringEngine
    from harvester.ai_engine.rubric import load_rubric
    from harvester.stages.score import format_top_results, run_scoring

    config = ScoringConfig()
    _configure_logging(config.log_level)
    require_vertex_project(config.vertex)

    extraction_path = Path(args.input) if args.input else config.pipeline.extraction_path
    output_path = Path(args.output) if args.output else config.pipeline.scoring_path
    patient, criteria = load_rubric(
        Path(args.patient_profile) if args.patient_profile else None,
        Path(args.criteria) if args.criteria else None,
    )

    engine = ScoringEngine(config.vertex)
    engine.initialize()

    summary = asyncio.run(
        run_scoring(
            config,
            engine,
            patient,
            criteria,
            extraction_path=extraction_path,
            output_path=output_path,
            signals=_signals_for("score", config.pipeline),
        )
    )
    print(format_top_results(summary, config.top_n))
    print(f"Results saved to {output_path}")
    return 0


def cmd_rubric(args: argparse.Namespace) -> int:
    from harvester.ai_engine.engine import ScoringEngine
    from harvester.ai_engine.rubric import write_rubric

    config = ScoringConfig()
    _configure_logging(config.log_level)
    require_vertex_project(config.vertex)

    conversation = json.loads(Path(args.conversation).read_text(encoding="utf-8"))
    if not isinstance(conversation, list):
        raise ConfigurationError(f"{args.conversation} must contain a JSON array of messages")

    engine = ScoringEngine(config.vertex)
    engine.initialize()

    async def derive():
        patient = await engine.derive_patient_profile(conversation)
        criteria = await engine.derive_criteria(patient)
        return patient, criteria

    patient, criteria = asyncio.run(derive())
    profile_path, criteria_path = write_rubric(Path(args.output_dir), patient, criteria)
    print(f"Patient profile written to {profile_path}")
    print(f"Criteria written to {criteria_path}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from harvester.api.app import create_app

    _configure_logging("INFO")
    uvicorn.run(create_app(APIConfig()), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harvester",
        description="Harvest therapist profiles and score them against a patient rubric.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scrape = sub.add_parser("scrape", help="Discover and extract profiles from the listing")
    scrape.add_argument("--list-url", help="Listing URL to walk (page 1)")
    scrape.add_argument("--max-pages", type=int, help="Maximum listing pages to visit")
    scrape.add_argument("--concurrency", type=int, help="Profiles extracted in parallel")
    scrape.add_argument("--output", help="Extraction checkpoint file")
    scrape.add_argument("--headed", action="store_true", help="Show the browser window")
    scrape.set_defaults(func=cmd_scrape)

    score = sub.add_parser("score", help="Score extracted profiles with Gemini")
    score.add_argument("--input", help="Extraction results file")
    score.add_argument("--output", help="Scoring checkpoint file")
    score.add_argument("--patient-profile", help="Patient profile JSON (default: built-in)")
    score.add_argument("--criteria", help="Matching criteria JSON (default: built-in)")
    score.set_defaults(func=cmd_score)

    rubric = sub.add_parser("rubric", help="Derive a patient profile and criteria from a conversation")
    rubric.add_argument("--conversation", required=True, help="JSON array of {role, content} messages")
    rubric.add_argument("--output-dir", default=".", help="Where to write the rubric files")
    rubric.set_defaults(func=cmd_rubric)

    serve = sub.add_parser("serve", help="Serve the results viewer API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except (ConfigurationError, ValidationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"Error: invalid JSON input: {exc}", file=sys.stderr)
        return 1
    except JobError as exc:
        logger.error("%s", exc)
        return 1
    except HarvesterError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted; progress up to the last completed batch is checkpointed.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
