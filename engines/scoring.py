"""Quiz score normalisation and learning-level classification.

This is the single implementation shared by the HTTP endpoint and the client
fallback path, so both always agree on the category for the same answers.
"""

from __future__ import annotations

from typing import Any, Mapping, Tuple, Union

from schemas import ClassificationResult, QuizAnswers

# Every sub-score lives on a 0-3 scale; CGPA (1-10) is rescaled onto it.
SUBSCORE_MAX = 3.0
CGPA_SCALE = 10.0
MAX_TOTAL_SCORE = 5 * SUBSCORE_MAX
STRUCTURED_MAX_PERCENT = 60.0

CATEGORY_DIFFICULTY = {
    "structured": "beginner",
    "advanced": "advanced",
}

LOCAL_ANALYSIS = {
    "structured": (
        "Your answers point to the Structured Learning track. "
        "Start with the fundamentals in order and work through each explanation step by step, "
        "trying every example yourself before moving on."
    ),
    "advanced": (
        "Your answers point to the Advanced Track. "
        "Focus on algorithms, trade-offs and design decisions, "
        "and pick concepts in the order that serves your current goals."
    ),
}

AnswersLike = Union[QuizAnswers, Mapping[str, Any]]


def _value(answers: AnswersLike, field: str) -> float:
    if isinstance(answers, QuizAnswers):
        raw = getattr(answers, field)
    else:
        raw = answers.get(field)
    if raw is None or raw == "":
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def normalize(answers: AnswersLike) -> Tuple[float, float]:
    """Return ``(total_score, percent)`` for one quiz submission.

    Out-of-range inputs are not clamped; only the percentage is.
    """

    total_score = (
        _value(answers, "coding_level_score")
        + _value(answers, "coding_proficiency_score")
        + _value(answers, "decision_making_score")
        + (_value(answers, "cgpa") / CGPA_SCALE) * SUBSCORE_MAX
        + _value(answers, "real_life_application_score")
    )
    percent = max(0.0, min(100.0, total_score / MAX_TOTAL_SCORE * 100.0))
    return total_score, percent


def classify(percent: float) -> str:
    if percent <= STRUCTURED_MAX_PERCENT:
        return "structured"
    return "advanced"


def difficulty_for(category: str) -> str:
    try:
        return CATEGORY_DIFFICULTY[category]
    except KeyError:
        raise ValueError(f"Unknown category: {category}") from None


def local_analysis(category: str) -> str:
    return LOCAL_ANALYSIS.get(category, LOCAL_ANALYSIS["structured"])


def evaluate(answers: AnswersLike) -> ClassificationResult:
    """Score, classify and attach the deterministic recommendation text."""

    total_score, percent = normalize(answers)
    category = classify(percent)
    return ClassificationResult(
        category=category,
        total_score=total_score,
        percent=percent,
        analysis=local_analysis(category),
    )
