"""Prompt builder for rubric derivation and candidate scoring."""

from __future__ import annotations

import json
from typing import Iterable

from harvester.ai_engine.schemas import PatientProfile, ScoreRecord, TherapistCriteria


def _schema_json(model: type) -> str:
    return json.dumps(model.model_json_schema(by_alias=True), indent=2)


def _model_json(model: PatientProfile | TherapistCriteria) -> str:
    return model.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class ScoringPromptBuilder:
    """Builds the three prompts the remote scorer is asked to answer."""

    def build_profile_prompt(self, conversation: Iterable[dict[str, str]]) -> str:
        history = "\n\n".join(
            f"{message.get('role', 'user').upper()}: {message.get('content', '')}"
            for message in conversation
        )
        return (
            "You are an expert clinical intake specialist. Analyze this conversation "
            "and extract a comprehensive patient profile.\n\n"
            "# CONVERSATION HISTORY\n"
            f"{history}\n\n"
            "# YOUR TASK\n"
            "Create a rich, nuanced patient profile. Don't oversimplify: capture "
            "complexity, ambivalence, and contradictions if present.\n\n"
            "Key principles:\n"
            "  - Be specific about therapeutic needs, not just the headline symptom\n"
            "  - Capture both explicit requests and implicit needs you infer\n"
            "  - Note defense mechanisms, coping styles, relationship patterns\n"
            "  - If past therapy failed, explain why (approach, therapist style, timing)\n"
            "  - Anything complex or unclear belongs in additionalContext\n\n"
            "Respond with a JSON object matching this schema:\n"
            f"{_schema_json(PatientProfile)}"
        )

    def build_criteria_prompt(self, patient: PatientProfile) -> str:
        return (
            "You are an expert in therapeutic modalities and therapist-patient "
            "matching. Given this patient profile, determine what would make an ideal "
            "therapeutic match.\n\n"
            "# PATIENT PROFILE\n"
            f"{_model_json(patient)}\n\n"
            "# YOUR TASK\n"
            "Create matching criteria that balance specificity with flexibility:\n"
            "  1. Which therapeutic approaches would genuinely help?\n"
            "  2. Which therapist qualities matter most?\n"
            "  3. What is an absolute deal-breaker versus merely suboptimal?\n"
            "  4. Which green flags might we not think to look for?\n\n"
            "Weight criteria by importance. Use \"critical\" sparingly. Use severity "
            "ratings on red flags thoughtfully. For complex cases add nuanced scoring "
            "rules and note unique matching challenges in specialConsiderations.\n\n"
            "Respond with JSON matching this schema:\n"
            f"{_schema_json(TherapistCriteria)}"
        )

    def build_scoring_prompt(
        self,
        patient: PatientProfile,
        criteria: TherapistCriteria,
        profile_text: str,
    ) -> str:
        return (
            "You are an expert clinical matcher. Score this therapist's fit for a "
            "specific patient.\n\n"
            "# PATIENT PROFILE\n"
            f"{_model_json(patient)}\n\n"
            "# MATCHING CRITERIA\n"
            f"{_model_json(criteria)}\n\n"
            "# SCORING INSTRUCTIONS\n"
            "  1. Read the therapist profile carefully\n"
            "  2. Look for green flags AND red flags\n"
            "  3. Apply the scoring rules, but use your judgment\n"
            "  4. Assign a score 0-100 with detailed reasoning\n\n"
            "Scoring framework: start at 50, add points for green flags weighted by "
            "importance, subtract for red flags weighted by severity, then apply the "
            "special scoring rules.\n\n"
            "Nuances:\n"
            "  - Absence of information is not a red flag\n"
            "  - Look for unexpected fit factors not in the criteria\n"
            "  - If the profile is thin or vague, lower your confidence\n"
            "  - A dealbreaker red flag caps the score around 20-30, not 0\n\n"
            "Great match (80-100): several critical green flags, no major red flags, "
            "tone aligned with the patient's needs.\n"
            "Poor match (0-30): dealbreaker red flags or most critical green flags "
            "missing.\n\n"
            "# THERAPIST PROFILE TO SCORE\n"
            '"""\n'
            f"{profile_text}\n"
            '"""\n\n'
            "Respond with JSON matching this schema:\n"
            f"{_schema_json(ScoreRecord)}\n\n"
            "Be thorough in reasoning and cite specific text from the profile as evidence."
        )
