"""Server-authoritative quiz analysis."""

from __future__ import annotations

import logging
from typing import Optional

import db
from engines import scoring
from engines.text_generation import generate_text
from schemas import ClassificationResult, QuizAnswers

logger = logging.getLogger(__name__)

# A couple of sentences is plenty; anything non-empty is accepted.
_MIN_ANALYSIS_CHARS = 1


class ProfileMissingError(LookupError):
    """Raised when the authenticated user has no profile row."""


def analysis_prompt(answers: QuizAnswers, result: ClassificationResult) -> str:
    label = "Structured Learning" if result.category == "structured" else "Advanced Track"
    return (
        "Analyze this coding assessment quiz result and provide personalized learning recommendations.\n\n"
        "Quiz Scores:\n"
        f"- Coding Level: {answers.coding_level_score:g}/3\n"
        f"- Coding Proficiency: {answers.coding_proficiency_score:g}/3\n"
        f"- Decision Making: {answers.decision_making_score:g}/3\n"
        f"- CGPA: {answers.cgpa:g}/10\n"
        f"- Real Life Application: {answers.real_life_application_score:g}/3\n\n"
        f"Total Score: {result.total_score:.2f} ({result.percent:.1f}%)\n"
        f"Category: {label}\n\n"
        "Provide a brief (2-3 sentences) personalized learning path recommendation for this student."
    )


def analyze_quiz(user_id: str, answers: QuizAnswers, *, use_llm: bool = True) -> ClassificationResult:
    """Classify a submission, persist it and overwrite the profile's level.

    Existing concepts are left untouched when the category changes on a re-take.
    """

    if db.get_profile(user_id) is None:
        raise ProfileMissingError(f"no profile for user {user_id}")

    result = scoring.evaluate(answers)
    analysis: Optional[str] = None
    if use_llm:
        analysis = generate_text(
            analysis_prompt(answers, result),
            purpose="quiz_analysis",
            user_id=user_id,
            min_chars=_MIN_ANALYSIS_CHARS,
        )
    if analysis:
        result = result.model_copy(update={"analysis": analysis})

    db.record_quiz_result(
        user_id,
        answers.model_dump(),
        total_score=result.total_score,
        percent=result.percent,
        category=result.category,
    )
    db.set_learning_level(user_id, result.category)
    logger.info(
        "Classified %s as %s (total=%.2f, percent=%.1f)",
        user_id,
        result.category,
        result.total_score,
        result.percent,
    )
    return result
