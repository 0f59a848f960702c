"""Scoring Engine — remote rubric evaluation backed by Gemini on Vertex AI.

The engine turns a prompt into a validated pydantic model and nothing else.
It keeps no state between calls and never retries on its own: any empty,
unparseable or off-schema response is raised as ``RemoteError`` so the
caller's retry policy decides what happens next.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from harvester.ai_engine.prompts import ScoringPromptBuilder
from harvester.ai_engine.schemas import (
    PatientProfile,
    ScoreRecord,
    TherapistCriteria,
)
from harvester.config.settings import ConfigurationError, VertexConfig, require_vertex_project
from harvester.telemetry.errors import ErrorCode, HarvesterError, emit_structured_error

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Maximum characters of profile text sent per request
MAX_PROFILE_CHARS = 20000

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

_FLAG_EVIDENCE_SCHEMA = {
    "type": "object",
    "properties": {
        "flag": {"type": "string"},
        "evidence": {"type": "string"},
        "impact": {"type": "string"},
    },
    "required": ["flag", "evidence", "impact"],
}

SCORE_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "score": {"type": "number"},
        "reasoning": {
            "type": "object",
            "properties": {
                "summary": {"type": "string"},
                "greenFlagsFound": {"type": "array", "items": _FLAG_EVIDENCE_SCHEMA},
                "redFlagsFound": {"type": "array", "items": _FLAG_EVIDENCE_SCHEMA},
                "missingElements": {"type": "array", "items": {"type": "string"}},
                "unexpectedPositives": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["summary", "greenFlagsFound", "redFlagsFound"],
        },
        "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
    },
    "required": ["score", "reasoning", "confidence"],
}


class RemoteError(HarvesterError):
    """The remote scorer failed or answered with something we cannot use."""


def load_credentials(config: VertexConfig) -> Any:
    """Resolve Google credentials for Vertex AI or raise ``ConfigurationError``.

    An explicit ``credentials_path`` must name a readable service account
    file; otherwise Application Default Credentials are used.
    """
    path = config.credentials_path.strip()
    if path:
        if not Path(path).is_file():
            raise ConfigurationError(
                f"GOOGLE_APPLICATION_CREDENTIALS points to {path}, which does not exist"
            )
        from google.oauth2 import service_account

        try:
            return service_account.Credentials.from_service_account_file(
                path, scopes=[CLOUD_PLATFORM_SCOPE]
            )
        except (ValueError, OSError) as exc:
            raise ConfigurationError(
                f"Could not load service account credentials from {path}: {exc}"
            ) from exc

    import google.auth
    from google.auth.exceptions import DefaultCredentialsError

    try:
        credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except DefaultCredentialsError as exc:
        raise ConfigurationError(
            "No Google credentials found. Set GOOGLE_APPLICATION_CREDENTIALS or run "
            f"'gcloud auth application-default login': {exc}"
        ) from exc
    return credentials


class ScoringEngine:
    """Gemini client for rubric scoring, routed through Vertex AI.

    A client can be injected (tests, alternative transports); otherwise
    ``initialize()`` builds one from ``VertexConfig``.
    """

    def __init__(
        self,
        config: VertexConfig,
        prompts: ScoringPromptBuilder | None = None,
        client: Any = None,
    ) -> None:
        self._config = config
        self._prompts = prompts or ScoringPromptBuilder()
        self._client = client
        self._initialized = client is not None

    @property
    def is_available(self) -> bool:
        return self._initialized and self._client is not None

    @property
    def model_name(self) -> str:
        return self._config.scoring_model

    def initialize(self) -> None:
        """Create the Gemini client. Raises ``ConfigurationError`` if unconfigured.

        Credentials are resolved here, before any request is made.
        """
        if self.is_available:
            return
        require_vertex_project(self._config)

        from google import genai

        if self._config.api_key.strip():
            self._client = genai.Client(api_key=self._config.api_key.strip())
            self._initialized = True
            logger.info("Scoring engine ready: %s via Gemini API key", self._config.scoring_model)
            return

        credentials = load_credentials(self._config)
        self._client = genai.Client(
            vertexai=True,
            project=self._config.project_id,
            location=self._config.location,
            credentials=credentials,
        )
        self._initialized = True
        logger.info("Scoring engine ready: %s in %s", self._config.scoring_model, self._config.location)

    async def score(
        self,
        profile_text: str,
        patient: PatientProfile,
        criteria: TherapistCriteria,
    ) -> ScoreRecord:
        """Score one candidate profile against the rubric."""
        prompt = self._prompts.build_scoring_prompt(
            patient, criteria, profile_text[:MAX_PROFILE_CHARS]
        )
        return await self._generate(prompt, ScoreRecord, SCORE_RESPONSE_SCHEMA)

    async def derive_patient_profile(
        self, conversation: Iterable[dict[str, str]]
    ) -> PatientProfile:
        """Build a patient profile from an intake conversation."""
        prompt = self._prompts.build_profile_prompt(conversation)
        return await self._generate(prompt, PatientProfile)

    async def derive_criteria(self, patient: PatientProfile) -> TherapistCriteria:
        """Build matching criteria for a patient profile."""
        prompt = self._prompts.build_criteria_prompt(patient)
        return await self._generate(prompt, TherapistCriteria)

    async def _generate(
        self,
        prompt: str,
        model: type[ModelT],
        response_schema: dict[str, Any] | None = None,
    ) -> ModelT:
        if not self.is_available:
            raise RemoteError("Scoring engine is not initialized")

        generation_config: dict[str, Any] = {"response_mime_type": "application/json"}
        if response_schema is not None:
            generation_config["response_schema"] = response_schema

        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.scoring_model,
                contents=prompt,
                config=generation_config,
            )
            text = response.text
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.REMOTE_CALL_FAILED,
                message=str(exc),
                suppressed=False,
                details={"model": self._config.scoring_model},
                level=logging.WARNING,
            )
            raise RemoteError(f"Gemini request failed: {exc}") from exc

        if not text or not text.strip():
            raise RemoteError("Empty response from Gemini")

        try:
            return model.model_validate(json.loads(text))
        except json.JSONDecodeError as exc:
            raise RemoteError(f"Gemini returned invalid JSON: {exc}") from exc
        except ValidationError as exc:
            raise RemoteError(
                f"Gemini response does not match {model.__name__}: "
                f"{exc.error_count()} validation errors"
            ) from exc
