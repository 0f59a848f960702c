"""Default patient profile and matching criteria, plus loaders for custom ones."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from harvester.ai_engine.schemas import PatientProfile, TherapistCriteria

logger = logging.getLogger(__name__)

_DEFAULT_PROFILE_DATA = {
    "mainIssue": (
        "Chronic emotional dissociation rooted in early relational trauma and lack of "
        "emotional mirroring. Presents a significant gap between high cognitive "
        "functioning and the ability to access or feel emotions in the present moment."
    ),
    "therapeuticNeeds": [
        "Relational-focused therapy emphasizing depth and authenticity",
        "Emotional containment and a 'holding' environment",
        "Somatic or body-based interventions to bypass intellectual defenses",
        "Non-verbal attunement and therapeutic presence",
        "A therapist able to work 'underneath' a high-functioning facade",
        "Repair of attachment wounds through the therapeutic relationship",
        "Experiential focus on the 'here-and-now'",
    ],
    "avoidances": [
        "Cognitive-Behavioral Therapy (CBT) and its derivatives",
        "Strategic Brief Therapy or symptom-focused models",
        "Coaching, goal-oriented, or solution-focused interventions",
        "Strictly logical or protocol-driven methodologies",
        "Detached, neutral, or overly formal therapeutic stances",
        "Focus on symptom reduction or behavioral homework",
    ],
    "contextualFactors": {
        "age": 25,
        "lifeSituation": (
            "High-achieving individual in a demanding professional or academic path; "
            "high external functioning contrasting with internal disconnection."
        ),
        "personalityTraits": [
            "Exceptional verbal and intellectual capabilities",
            "Strong analytical mind used as a defensive shield",
            "Appears highly competent and 'put together' externally",
        ],
        "copingMechanisms": [
            "Hyper-rationalization of emotional pain",
            "Use of logic to keep distance from felt experience",
            "Compensatory self-reliance and a performance-oriented mask",
        ],
    },
    "pastTherapyExperience": {
        "hasPreviousTherapy": True,
        "whatDidntWork": [
            "Manualized or structured cognitive approaches",
            "Therapists 'seduced' by the patient's intellectual eloquence",
            "Interventions that stayed at a surface, behavioral level",
        ],
        "reasonsForFailure": [
            "The therapist could not see past the high-functioning mask",
            "The approach reinforced the tendency to stay 'in the head'",
            "Lack of relational depth or emotional warmth",
            "Multiple previous attempts failed due to mismatch in therapeutic depth",
        ],
    },
    "logistics": {
        "onlineRequired": True,
        "languagePreferences": ["Italian"],
        "locationPreferences": [
            "Initial focus on Italian-speaking clinicians",
            "Long-term online continuity regardless of relocation",
        ],
    },
    "additionalContext": (
        "A classic high-functioning trauma case: intelligence is a survival mechanism "
        "against the pain of early emotional neglect. Traditional talk therapies often "
        "fail because the patient is 'too good' at talking. Ideal matches include "
        "Gestalt, Relational Psychoanalysis, Bioenergetics, or Sensorimotor therapy; "
        "logic-first or symptom-fixing approaches such as CBT are contraindicated."
    ),
}

_DEFAULT_CRITERIA_DATA = {
    "greenFlags": {
        "therapeuticApproaches": [
            {
                "name": "Gestalt / Relational Approaches",
                "reason": "Present-moment awareness and authentic contact bypass intellectual defenses.",
                "importance": "critical",
            },
            {
                "name": "Somatic / Sensorimotor / Bioenergetics",
                "reason": "Works on emotional blockages through the body.",
                "importance": "high",
            },
            {
                "name": "Attachment-based Therapy",
                "reason": "Repairs relational wounds and emotional mirroring.",
                "importance": "critical",
            },
            {
                "name": "Humanistic / Existential",
                "reason": "Prioritizes the authentic encounter over rigid technique.",
                "importance": "high",
            },
        ],
        "thematicElements": [
            {
                "theme": "Relational Depth",
                "keywords": ["autenticità", "incontro", "relazione terapeutica", "presenza"],
                "importance": "critical",
            },
            {
                "theme": "Body & Emotion",
                "keywords": ["corpo", "somatico", "sentire", "vissuto emotivo"],
                "importance": "critical",
            },
            {
                "theme": "Trauma & Attachment",
                "keywords": ["attaccamento", "trauma relazionale", "base sicura"],
                "importance": "high",
            },
        ],
        "therapistQualities": [
            {
                "quality": "Empathic & Human",
                "indicators": ["calore", "umano", "non giudicante", "accogliente"],
                "importance": "critical",
            },
            {
                "quality": "Intuitive / Beyond Words",
                "indicators": ["ascolto profondo", "cogliere il non detto"],
                "importance": "high",
            },
            {
                "quality": "Collaborative",
                "indicators": ["co-costruire", "orizzontalità", "umiltà"],
                "importance": "high",
            },
        ],
    },
    "redFlags": {
        "therapeuticApproaches": [
            {
                "name": "CBT (Cognitive Behavioral Therapy)",
                "reason": "Reinforces intellectualization; logic over felt experience.",
                "severity": "dealbreaker",
            },
            {
                "name": "Brief Strategic Therapy / Coaching",
                "reason": "Problem-solving focus is too superficial for relational trauma.",
                "severity": "dealbreaker",
            },
            {
                "name": "Strictly Manualized Protocols",
                "reason": "Rigidity prevents the relational connection required.",
                "severity": "major-concern",
            },
        ],
        "thematicElements": [
            {
                "theme": "Over-intellectualization",
                "keywords": ["ristrutturazione cognitiva", "pensieri disfunzionali", "compiti a casa"],
                "severity": "dealbreaker",
            },
            {
                "theme": "Superficiality",
                "keywords": ["tempi brevi", "soluzioni pratiche", "risultati rapidi"],
                "severity": "major-concern",
            },
        ],
        "therapistQualities": [
            {
                "quality": "Cold / Detached",
                "indicators": ["distaccato", "puramente tecnico", "aziendale"],
                "severity": "dealbreaker",
            },
            {
                "quality": "Authoritarian",
                "indicators": ["direttivo", "prescrittivo", "esperto assoluto"],
                "severity": "major-concern",
            },
        ],
    },
    "scoringRules": [
        {
            "rule": "Cap score at 30 if primary approach is CBT or Strategic",
            "type": "hard-cap",
            "reasoning": "Counter-indicated for patients with strong intellectual defenses.",
        },
        {
            "rule": "Add +15 bonus for Gestalt, Somatic or Relational expertise",
            "type": "bonus",
            "reasoning": "Ideal for bypassing verbal masks and accessing core emotions.",
        },
        {
            "rule": "Mandatory: must support remote/online sessions",
            "type": "requirement",
            "reasoning": "Continuity of care regardless of patient location.",
        },
        {
            "rule": "Penalty (-20) for overly 'New Age' or unscientific claims",
            "type": "major-penalty",
            "reasoning": "High-functioning patients require professional credibility.",
        },
    ],
    "specialConsiderations": (
        "Focus on the high-functioning mask: the ideal therapist is not seduced by the "
        "patient's verbal competence and works on the underlying emotional "
        "disconnection. Relational warmth and a body-oriented approach matter more "
        "than academic credentials."
    ),
}

DEFAULT_PATIENT_PROFILE = PatientProfile.model_validate(_DEFAULT_PROFILE_DATA)
DEFAULT_CRITERIA = TherapistCriteria.model_validate(_DEFAULT_CRITERIA_DATA)


def load_rubric(
    profile_path: Path | None = None,
    criteria_path: Path | None = None,
) -> tuple[PatientProfile, TherapistCriteria]:
    """Load a patient profile and criteria from JSON files, defaulting each one.

    Invalid files raise: a wrong rubric would silently skew every score.
    """
    patient = DEFAULT_PATIENT_PROFILE
    criteria = DEFAULT_CRITERIA
    if profile_path is not None:
        patient = PatientProfile.model_validate_json(profile_path.read_text(encoding="utf-8"))
        logger.info("Loaded patient profile from %s", profile_path)
    if criteria_path is not None:
        criteria = TherapistCriteria.model_validate_json(criteria_path.read_text(encoding="utf-8"))
        logger.info("Loaded criteria from %s", criteria_path)
    return patient, criteria


def write_rubric(
    output_dir: Path, patient: PatientProfile, criteria: TherapistCriteria
) -> tuple[Path, Path]:
    """Write a derived rubric as two JSON files loadable by ``load_rubric``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    profile_path = output_dir / "patient-profile.json"
    criteria_path = output_dir / "criteria.json"
    profile_path.write_text(
        json.dumps(patient.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2),
        encoding="utf-8",
    )
    criteria_path.write_text(
        json.dumps(criteria.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2),
        encoding="utf-8",
    )
    return profile_path, criteria_path
