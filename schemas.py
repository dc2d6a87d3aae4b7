"""Pydantic schemas for request bodies, results and stored rows."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

__all__ = [
    "Category",
    "DifficultyLevel",
    "QuizAnswers",
    "ClassificationResult",
    "AnalyzeQuizResponse",
    "GenerateContentRequest",
    "GenerateContentResponse",
    "Concept",
    "Profile",
    "ProfileUpdate",
    "RegisterBody",
    "LoginBody",
    "QuizResultRow",
    "QuizHistory",
]

Category = Literal["structured", "advanced"]
DifficultyLevel = Literal["beginner", "advanced"]


class QuizAnswers(BaseModel):
    """Raw answers of one quiz submission.

    Unanswered fields default to ``0``; values are deliberately not range checked,
    only the final percentage is clamped.
    """

    coding_level_score: float = 0
    coding_proficiency_score: float = 0
    decision_making_score: float = 0
    cgpa: float = 0
    real_life_application_score: float = 0

    model_config = {
        "allow_inf_nan": False,
    }


class ClassificationResult(BaseModel):
    category: Category
    total_score: float
    percent: float = Field(ge=0, le=100)
    analysis: str = ""


class AnalyzeQuizResponse(ClassificationResult):
    success: bool = True


class GenerateContentRequest(BaseModel):
    generate_initial: bool = False
    concept_name: Optional[str] = None
    topic: Optional[str] = None
    language: Optional[str] = None
    skill_level: Optional[Category] = None

    def requested_concept(self) -> Optional[str]:
        """``concept_name`` wins over ``topic``; blank names count as missing."""
        for candidate in (self.concept_name, self.topic):
            if candidate and candidate.strip():
                return candidate.strip()
        return None


class GenerateContentResponse(BaseModel):
    success: bool = True
    message: str
    description: Optional[str] = None
    concept: Optional["Concept"] = None


class Concept(BaseModel):
    id: int
    user_id: str
    concept_name: str
    concept_description: str
    difficulty_level: DifficultyLevel
    is_completed: bool = False
    order_index: int = 0
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class Profile(BaseModel):
    id: str
    name: str = ""
    learning_level: Optional[Category] = None
    coding_level: int = 1
    goal_description: str = ""
    social_feeds: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    learning_level: Optional[Category] = None
    coding_level: Optional[int] = Field(default=None, ge=1)
    goal_description: Optional[str] = None
    social_feeds: Optional[Dict[str, str]] = None

    @model_validator(mode="after")
    def _reject_explicit_nulls(self) -> "ProfileUpdate":
        # social_feeds may be cleared; the other columns are NOT NULL.
        for field in ("name", "learning_level", "coding_level", "goal_description"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} must not be null")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class RegisterBody(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1)
    email: Optional[str] = None
    name: str = ""


class LoginBody(BaseModel):
    user_id: str
    password: str


class QuizResultRow(BaseModel):
    id: int
    user_id: str
    total_score: float
    percent: float
    category: Category
    created_at: Optional[str] = None


class QuizHistory(BaseModel):
    results: List[QuizResultRow] = Field(default_factory=list)


GenerateContentResponse.model_rebuild()
