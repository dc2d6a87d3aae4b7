import sqlite3

import pytest

import db
from concept_catalog import CONCEPT_CATALOG
from engines.materializer import (
    ClassificationMissingError,
    ConceptNotFoundError,
    ContentMaterializer,
    resolve_category,
)


class _StubDescriber:
    def __init__(self):
        self.calls = []

    def __call__(self, category, concept_name, language=None, *, user_id=None):
        self.calls.append((category, concept_name, language, user_id))
        return f"[{category}] explanation of {concept_name}"


@pytest.fixture
def describer():
    return _StubDescriber()


@pytest.fixture
def materializer(describer):
    return ContentMaterializer(describer=describer)


def test_initial_generation_materialises_catalog_in_order(learner, materializer, describer):
    result = materializer.generate_initial(learner, "structured", "Python")

    assert result.outcome == "created"
    assert result.count == 10
    assert result.message == "Learning content generated"

    concepts = db.list_concepts(learner)
    assert [c["concept_name"] for c in concepts] == list(CONCEPT_CATALOG.onboarding_concepts("structured"))
    assert [c["order_index"] for c in concepts] == list(range(10))
    assert {c["difficulty_level"] for c in concepts} == {"beginner"}
    assert not any(c["is_completed"] for c in concepts)
    assert describer.calls[0] == ("structured", "Variables and Data Types", "Python", learner)


def test_initial_generation_runs_once_per_user(learner, materializer, describer):
    materializer.generate_initial(learner, "advanced")
    calls_after_first = len(describer.calls)

    again = materializer.generate_initial(learner, "structured")

    assert again.outcome == "already_generated"
    assert again.message == "Initial content already generated"
    assert len(describer.calls) == calls_after_first
    concepts = db.list_concepts(learner)
    assert len(concepts) == 9
    assert {c["difficulty_level"] for c in concepts} == {"advanced"}


def test_any_existing_concept_blocks_the_batch(learner, materializer):
    materializer.upsert_concept(learner, "Closures", "advanced")

    result = materializer.generate_initial(learner, "advanced")

    assert result.outcome == "already_generated"
    assert [c["concept_name"] for c in db.list_concepts(learner)] == ["Closures"]


def test_first_on_demand_concept_starts_at_index_zero(learner, materializer):
    result = materializer.upsert_concept(learner, "  Basic Operators ", "structured", "Python")

    assert result.outcome == "created"
    assert result.message == "Concept added to learning path"
    assert result.description == "[structured] explanation of Basic Operators"
    assert result.concept["concept_name"] == "Basic Operators"
    assert result.concept["order_index"] == 0
    assert result.concept["difficulty_level"] == "beginner"


def test_new_concepts_append_after_highest_index(learner, materializer):
    materializer.generate_initial(learner, "structured")

    result = materializer.upsert_concept(learner, "Closures", "structured")

    assert result.concept["order_index"] == 10
    assert db.list_concepts(learner)[-1]["concept_name"] == "Closures"


def test_repeat_request_updates_in_place(learner, materializer):
    first = materializer.upsert_concept(learner, "Recursion", "structured")
    second = materializer.upsert_concept(learner, "Recursion", "advanced")

    assert second.outcome == "updated"
    assert second.message == "Concept explanation updated"
    assert second.concept["id"] == first.concept["id"]
    assert second.concept["order_index"] == first.concept["order_index"]
    assert second.concept["difficulty_level"] == "advanced"
    assert second.concept["concept_description"] == "[advanced] explanation of Recursion"
    assert len(db.list_concepts(learner)) == 1


def test_blank_concept_name_is_rejected(learner, materializer, describer):
    with pytest.raises(ValueError):
        materializer.upsert_concept(learner, "   ", "structured")
    assert describer.calls == []


def test_completion_is_terminal(learner, materializer):
    concept = materializer.upsert_concept(learner, "Loops", "structured").concept

    done = materializer.mark_completed(learner, concept["id"])
    assert done["is_completed"] is True
    assert done["completed_at"]

    again = materializer.mark_completed(learner, concept["id"])
    assert again["is_completed"] is True
    assert again["completed_at"] == done["completed_at"]

    materializer.upsert_concept(learner, "Loops", "advanced")
    assert db.get_concept(learner, concept["id"])["is_completed"] is True


def test_completion_is_scoped_to_the_owner(learner, materializer):
    concept = materializer.upsert_concept(learner, "Loops", "structured").concept
    db.create_profile("someone-else")

    with pytest.raises(ConceptNotFoundError):
        materializer.mark_completed("someone-else", concept["id"])
    with pytest.raises(ConceptNotFoundError):
        materializer.mark_completed(learner, 9999)


def test_duplicate_names_violate_unique_index(learner):
    db.insert_concept(learner, "Loops", "text", "beginner", 0)
    with pytest.raises(sqlite3.IntegrityError):
        db.insert_concept(learner, "Loops", "text", "beginner", 1)


def test_resolve_category_requires_a_classified_profile(learner):
    with pytest.raises(ClassificationMissingError):
        resolve_category(learner)
    with pytest.raises(ClassificationMissingError):
        resolve_category(learner, "advanced")

    db.set_learning_level(learner, "structured")
    assert resolve_category(learner) == "structured"
    assert resolve_category(learner, "advanced") == "advanced"
