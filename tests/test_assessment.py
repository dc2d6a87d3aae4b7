from unittest.mock import patch

import pytest

import db
from engines import assessment, scoring
from schemas import QuizAnswers

ANSWERS = QuizAnswers(
    coding_level_score=2,
    coding_proficiency_score=2,
    decision_making_score=2,
    cgpa=8,
    real_life_application_score=2,
)


def test_analysis_is_persisted_and_level_overwritten(learner):
    result = assessment.analyze_quiz(learner, ANSWERS)

    # 2+2+2+2.4+2 = 10.4 of 15
    assert result.total_score == pytest.approx(10.4)
    assert result.category == "advanced"
    assert result.analysis == scoring.local_analysis("advanced")

    rows = db.list_quiz_results(learner)
    assert len(rows) == 1
    assert rows[0]["cgpa"] == 8
    assert rows[0]["percent"] == pytest.approx(result.percent)
    assert db.get_profile(learner)["learning_level"] == "advanced"


def test_generated_analysis_replaces_local_text(learner):
    with patch("engines.assessment.generate_text", return_value="Start with recursion drills.") as generate:
        result = assessment.analyze_quiz(learner, ANSWERS)

    assert result.analysis == "Start with recursion drills."
    prompt = generate.call_args.args[0]
    assert "- CGPA: 8/10" in prompt
    assert "Category: Advanced Track" in prompt
    assert generate.call_args.kwargs["purpose"] == "quiz_analysis"


def test_missing_profile_fails_before_any_write(temp_db):
    with patch("engines.assessment.generate_text") as generate:
        with pytest.raises(assessment.ProfileMissingError):
            assessment.analyze_quiz("ghost", ANSWERS)

    generate.assert_not_called()
    assert db.list_quiz_results("ghost") == []


def test_retake_keeps_existing_concepts(learner):
    assessment.analyze_quiz(learner, ANSWERS, use_llm=False)
    db.insert_concept(learner, "Graphs", "text", "advanced", 0)

    result = assessment.analyze_quiz(learner, QuizAnswers(), use_llm=False)

    assert result.category == "structured"
    assert db.get_profile(learner)["learning_level"] == "structured"
    assert db.list_concepts(learner)[0]["difficulty_level"] == "advanced"
