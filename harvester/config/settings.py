"""Harvester configuration settings."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from harvester.telemetry.errors import HarvesterError

DEFAULT_LIST_URL = (
    "https://www.miodottore.it/cerca?filters%5Bspecializations%5D%5B0%5D=22"
    "&loc=Bologna%2C%20BO&q=psicoterapeuta"
)


class ConfigurationError(HarvesterError):
    """Raised at startup when a required setting or credential is missing."""


def _env_flag(var_name: str, default: bool) -> bool:
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class VertexConfig(BaseModel):
    """Vertex AI configuration for the remote scorer."""

    project_id: str = Field(default_factory=lambda: os.getenv("VERTEX_PROJECT_ID", ""))
    location: str = Field(default_factory=lambda: os.getenv("VERTEX_LOCATION", "us-central1"))
    credentials_path: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
    )
    # Gemini Developer API key; takes precedence over Vertex routing when set
    api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    scoring_model: str = Field(
        default_factory=lambda: os.getenv("HARVESTER_SCORING_MODEL", "gemini-2.5-flash")
    )


class RetryConfig(BaseModel):
    """Fixed-delay retry budget for a single remote call."""

    max_retries: int = 3
    retry_delay_s: float = 5.0

    @field_validator("max_retries")
    @classmethod
    def _validate_max_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_retries must be >= 0")
        return value

    @field_validator("retry_delay_s")
    @classmethod
    def _validate_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("retry_delay_s must be >= 0")
        return value


class BatchConfig(BaseModel):
    """Checkpoint granularity and concurrency ceiling for a job."""

    batch_size: int = 3
    concurrency: int = 3
    stagger_ms: int = 0
    chunk_delay_s: float = 0.0
    batch_delay_s: float = 1.0

    @field_validator("batch_size", "concurrency")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch_size and concurrency must be >= 1")
        return value

    @field_validator("stagger_ms", "chunk_delay_s", "batch_delay_s")
    @classmethod
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("delays must be >= 0")
        return value


class TimeoutConfig(BaseModel):
    """Timeout budgets for navigation and best-effort page interactions."""

    page_load_timeout_s: int = 60
    consent_timeout_s: int = 4
    reveal_timeout_s: int = 3
    settle_ms: int = 500
    listing_settle_ms: int = 1500


class BrowserConfig(BaseModel):
    """Browser layer configuration."""

    headless: bool = Field(default_factory=lambda: _env_flag("HARVESTER_HEADLESS", True))
    viewport_width: int = 1920
    viewport_height: int = 1080
    executable_path: str | None = Field(
        default_factory=lambda: os.getenv("CHROMIUM_PATH") or None
    )
    user_agent: str | None = None
    locale: str = "it-IT"


class DiscoveryConfig(BaseModel):
    """Listing walk configuration."""

    list_url: str = Field(
        default_factory=lambda: os.getenv("HARVESTER_LIST_URL", DEFAULT_LIST_URL)
    )
    max_pages: int = 10
    page_param: str = "page"
    link_selector: str = ".card-body h3 a.text-body"
    consent_selector: str = "#onetrust-reject-all-handler"

    @field_validator("list_url")
    @classmethod
    def _validate_list_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid listing URL: {value}")
        return value

    @field_validator("max_pages")
    @classmethod
    def _validate_max_pages(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_pages must be >= 1")
        return value


class PipelineConfig(BaseModel):
    """Where checkpoints and the signal ledger live."""

    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("HARVESTER_DATA_DIR", "./data"))
    )
    extraction_file: str = "doctor-results.json"
    scoring_file: str = "analysis_results.json"
    ledger_file: str = "signals.jsonl"

    @property
    def extraction_path(self) -> Path:
        return self.data_dir / self.extraction_file

    @property
    def scoring_path(self) -> Path:
        return self.data_dir / self.scoring_file

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / self.ledger_file


class ScrapeConfig(BaseModel):
    """Root configuration for the extraction stage."""

    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    batch: BatchConfig = Field(
        default_factory=lambda: BatchConfig(
            batch_size=12,
            concurrency=12,
            stagger_ms=200,
            chunk_delay_s=1.0,
            batch_delay_s=1.0,
        )
    )
    retry: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_retries=1, retry_delay_s=2.0)
    )
    log_level: str = Field(default_factory=lambda: os.getenv("HARVESTER_LOG_LEVEL", "INFO"))


class ScoringConfig(BaseModel):
    """Root configuration for the scoring stage."""

    vertex: VertexConfig = Field(default_factory=VertexConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    top_n: int = 5
    log_level: str = Field(default_factory=lambda: os.getenv("HARVESTER_LOG_LEVEL", "INFO"))


class APIConfig(BaseModel):
    """Read-side viewer API settings."""

    allowed_origins: list[str] = Field(
        default_factory=lambda: APIConfig.parse_allowed_origins(
            os.getenv("HARVESTER_ALLOWED_ORIGINS", "")
        )
    )
    viewer_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("HARVESTER_VIEWER_PATH", "therapist-viewer.html")
        )
    )
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @staticmethod
    def parse_allowed_origins(value: str) -> list[str]:
        if not value.strip():
            return ["*"]
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("allowed_origins")
    @classmethod
    def _validate_allowed_origins(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("allowed_origins cannot be empty")
        for origin in value:
            if origin == "*":
                continue
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"Invalid CORS origin: {origin}")
        return value


def require_vertex_project(config: VertexConfig) -> None:
    """Fail fast when the scoring stage has neither an API key nor a Vertex project."""
    if config.api_key.strip():
        return
    if not config.project_id.strip():
        raise ConfigurationError(
            "VERTEX_PROJECT_ID is not set. Export it (and GOOGLE_APPLICATION_CREDENTIALS "
            "if not using default credentials), or set GEMINI_API_KEY, before running "
            "the scoring stage."
        )
