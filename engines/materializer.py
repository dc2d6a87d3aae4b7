"""Turn generated explanations into persisted learning-path concepts.

Two entry points mirror the onboarding and the on-demand flows:

``generate_initial``
    Materialise the category's onboarding catalog once per user. Any existing
    concept row makes the call a no-op that reports ``already_generated``.

``upsert_concept``
    Generate one explanation and store it under ``(user_id, concept_name)``,
    replacing the description of an existing row or appending a new one after
    the current highest ``order_index``. The description is returned to the
    caller so it can be rendered without a follow-up read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

import db
from concept_catalog import CONCEPT_CATALOG, ConceptCatalogRegistry
from engines import scoring
from engines.text_generation import describe_concept

logger = logging.getLogger(__name__)

Outcome = Literal["created", "updated", "already_generated"]
Describer = Callable[..., str]


class ClassificationMissingError(RuntimeError):
    """Raised when content is requested before the quiz has been taken."""


class ConceptNotFoundError(LookupError):
    """Raised when a concept does not exist or belongs to another user."""


@dataclass
class MaterializeResult:
    outcome: Outcome
    count: int = 0
    description: Optional[str] = None
    concept: Optional[Dict[str, Any]] = None

    @property
    def message(self) -> str:
        if self.outcome == "already_generated":
            return "Initial content already generated"
        if self.concept is None:
            return "Learning content generated"
        if self.outcome == "updated":
            return "Concept explanation updated"
        return "Concept added to learning path"


def resolve_category(user_id: str, requested: Optional[str] = None) -> str:
    """Return the category to generate for.

    The profile must be classified even when the caller overrides the level.
    """

    profile = db.get_profile(user_id)
    if not profile or not profile.get("learning_level"):
        raise ClassificationMissingError("Please complete the quiz first")
    return requested or profile["learning_level"]


class ContentMaterializer:
    def __init__(
        self,
        catalog: Optional[ConceptCatalogRegistry] = None,
        describer: Optional[Describer] = None,
    ) -> None:
        self.catalog = catalog or CONCEPT_CATALOG
        self.describer = describer or describe_concept

    def generate_initial(self, user_id: str, category: str, language: Optional[str] = None) -> MaterializeResult:
        if db.has_concepts(user_id):
            logger.info("Onboarding catalog already present for %s; skipping", user_id)
            return MaterializeResult("already_generated")

        difficulty = scoring.difficulty_for(category)
        rows: List[Dict[str, Any]] = []
        for order_index, concept_name in enumerate(self.catalog.onboarding_concepts(category)):
            description = self.describer(category, concept_name, language, user_id=user_id)
            rows.append(
                {
                    "concept_name": concept_name,
                    "concept_description": description,
                    "difficulty_level": difficulty,
                    "order_index": order_index,
                }
            )

        # The check above and this insert are not one transaction; a concurrent
        # duplicate batch fails on the (user_id, concept_name) unique index.
        count = db.insert_concepts(user_id, rows)
        logger.info("Inserted %s onboarding concepts for %s (%s)", count, user_id, category)
        return MaterializeResult("created", count=count)

    def upsert_concept(
        self,
        user_id: str,
        concept_name: str,
        category: str,
        language: Optional[str] = None,
    ) -> MaterializeResult:
        name = concept_name.strip()
        if not name:
            raise ValueError("concept_name must not be blank")

        difficulty = scoring.difficulty_for(category)
        description = self.describer(category, name, language, user_id=user_id)

        existing = db.find_concept(user_id, name)
        if existing:
            concept = db.update_concept_description(user_id, existing["id"], description, difficulty)
            return MaterializeResult("updated", count=1, description=description, concept=concept)

        highest = db.max_order_index(user_id)
        order_index = 0 if highest is None else highest + 1
        concept = db.insert_concept(user_id, name, description, difficulty, order_index)
        return MaterializeResult("created", count=1, description=description, concept=concept)

    def mark_completed(self, user_id: str, concept_id: int) -> Dict[str, Any]:
        concept = db.complete_concept(user_id, concept_id)
        if concept is None:
            raise ConceptNotFoundError(f"concept {concept_id} not found")
        return concept
