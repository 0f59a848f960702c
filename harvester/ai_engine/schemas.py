"""Rubric and score models exchanged with the remote scorer."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from harvester.pipeline.extraction import CamelModel


class Importance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    NICE_TO_HAVE = "nice-to-have"


class Severity(str, Enum):
    DEALBREAKER = "dealbreaker"
    MAJOR_CONCERN = "major-concern"
    MODERATE_CONCERN = "moderate-concern"
    MINOR_CONCERN = "minor-concern"


class RuleType(str, Enum):
    HARD_CAP = "hard-cap"
    MAJOR_PENALTY = "major-penalty"
    BONUS = "bonus"
    REQUIREMENT = "requirement"


class Confidence(str, Enum):
    """How much the scorer trusts its own score. Ordered low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank >= other.rank


_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


# --- Patient profile ---


class ContextualFactors(CamelModel):
    age: int | None = None
    life_situation: str | None = None
    personality_traits: list[str] | None = None
    coping_mechanisms: list[str] | None = None


class PastTherapyExperience(CamelModel):
    has_previous_therapy: bool
    what_worked: list[str] | None = None
    what_didnt_work: list[str] | None = None
    reasons_for_failure: list[str] | None = None


class Logistics(CamelModel):
    online_required: bool | None = None
    language_preferences: list[str] | None = None
    location_preferences: list[str] | None = None
    budget: str | None = None
    availability: str | None = None


class PatientProfile(CamelModel):
    """Who the candidates are being matched for."""

    main_issue: str
    therapeutic_needs: list[str]
    avoidances: list[str]
    contextual_factors: ContextualFactors | None = None
    past_therapy_experience: PastTherapyExperience | None = None
    logistics: Logistics | None = None
    additional_context: str | None = None


# --- Criteria ---


class ApproachFlag(CamelModel):
    name: str
    reason: str
    importance: Importance


class ThemeFlag(CamelModel):
    theme: str
    keywords: list[str]
    importance: Importance


class QualityFlag(CamelModel):
    quality: str
    indicators: list[str]
    importance: Importance


class ApproachConcern(CamelModel):
    name: str
    reason: str
    severity: Severity


class ThemeConcern(CamelModel):
    theme: str
    keywords: list[str]
    severity: Severity


class QualityConcern(CamelModel):
    quality: str
    indicators: list[str]
    severity: Severity


class GreenFlags(CamelModel):
    therapeutic_approaches: list[ApproachFlag] = Field(default_factory=list)
    thematic_elements: list[ThemeFlag] = Field(default_factory=list)
    therapist_qualities: list[QualityFlag] = Field(default_factory=list)


class RedFlags(CamelModel):
    therapeutic_approaches: list[ApproachConcern] = Field(default_factory=list)
    thematic_elements: list[ThemeConcern] = Field(default_factory=list)
    therapist_qualities: list[QualityConcern] = Field(default_factory=list)


class ScoringRule(CamelModel):
    rule: str
    type: RuleType
    reasoning: str


class TherapistCriteria(CamelModel):
    """The evaluation rubric: weighted green flags, red flags and scoring rules."""

    green_flags: GreenFlags
    red_flags: RedFlags
    scoring_rules: list[ScoringRule] = Field(default_factory=list)
    special_considerations: str | None = None


# --- Score ---


class FlagEvidence(CamelModel):
    flag: str
    evidence: str
    impact: str


class ScoreReasoning(CamelModel):
    summary: str
    green_flags_found: list[FlagEvidence] = Field(default_factory=list)
    red_flags_found: list[FlagEvidence] = Field(default_factory=list)
    missing_elements: list[str] | None = None
    unexpected_positives: list[str] | None = None


class ScoreRecord(CamelModel):
    """A validated response from the remote scorer."""

    score: float = Field(ge=0, le=100)
    reasoning: ScoreReasoning
    confidence: Confidence


class ScoreResult(ScoreRecord):
    """Scoring-stage checkpoint row. Failures are scored 0, never omitted."""

    url: str
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def from_score(cls, url: str, record: ScoreRecord) -> "ScoreResult":
        return cls(url=url, **record.model_dump())

    @classmethod
    def failure(cls, url: str, reason: str) -> "ScoreResult":
        reason = reason or "unknown error"
        return cls(
            url=url,
            score=0,
            reasoning=ScoreReasoning(summary=f"ANALYSIS FAILED: {reason}"),
            confidence=Confidence.LOW,
            error=reason,
        )
