"""Read-side routes: the merged therapist list and the static viewer page."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from harvester.config.settings import APIConfig

logger = logging.getLogger(__name__)

router = APIRouter()
viewer_router = APIRouter()

_api_config = APIConfig()

# Extraction fields copied onto each scoring row, keyed by output name.
MERGED_FIELDS = {
    "rating": "rating",
    "reviewCount": "reviewCount",
    "avatar": "avatar",
}


def _read_json_list(path: Path) -> list[dict[str, Any]]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array")
    return data


def merge_results(
    scores: Iterable[dict[str, Any]],
    extractions: Iterable[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Left-join scoring rows with extraction rows by ``url``.

    Every merged field is always present; it is ``None`` when the extraction
    row, its ``data`` or the field itself is missing. Falsy values such as a
    ``0`` rating are kept as they are.
    """
    by_url: dict[str, dict[str, Any]] = {}
    for row in extractions:
        url = row.get("url")
        if url and url not in by_url:
            by_url[url] = row.get("data") or {}

    merged = []
    for score in scores:
        data = by_url.get(score.get("url"), {})
        row = dict(score)
        for out_name, source_name in MERGED_FIELDS.items():
            row[out_name] = data.get(source_name)
        merged.append(row)
    return merged


@router.get("/therapists")
async def list_therapists() -> list[dict[str, Any]]:
    pipeline = _api_config.pipeline
    if not pipeline.scoring_path.exists():
        raise HTTPException(status_code=404, detail="Analysis results not found")

    try:
        scores = _read_json_list(pipeline.scoring_path)
        extractions = (
            _read_json_list(pipeline.extraction_path)
            if pipeline.extraction_path.exists()
            else []
        )
    except (OSError, ValueError) as exc:
        logger.error("Failed to read results: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to load data") from exc

    return merge_results(scores, extractions)


@viewer_router.get("/", include_in_schema=False)
async def viewer() -> FileResponse:
    if not _api_config.viewer_path.is_file():
        raise HTTPException(status_code=404, detail="Viewer not found")
    return FileResponse(_api_config.viewer_path, media_type="text/html")
