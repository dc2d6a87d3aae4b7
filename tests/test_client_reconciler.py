import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
import requests

from client import (
    ApiError,
    ConceptDetailView,
    ConceptListCache,
    LearningPathClient,
    QuizReconciler,
    QuizSubmissionError,
    SessionExpiredError,
)
from schemas import QuizAnswers

LOWEST = QuizAnswers(
    coding_level_score=1,
    coding_proficiency_score=1,
    decision_making_score=1,
    cgpa=1,
    real_life_application_score=1,
)


class FakeClient:
    """In-memory stand-in for LearningPathClient."""

    def __init__(self):
        self.calls = []
        self.analyze_error = None
        self.analyze_response = None
        self.update_error = None
        self.generate_error = None
        self.profile = {"id": "asha", "name": "Asha", "learning_level": None}
        self.concepts = []
        self.request_concept_response = None

    def analyze_quiz(self, answers):
        self.calls.append(("analyze_quiz", answers.model_dump()))
        if self.analyze_error:
            raise self.analyze_error
        return self.analyze_response

    def generate_initial(self, language=None):
        self.calls.append(("generate_initial", language))
        if self.generate_error:
            raise self.generate_error
        return {"success": True, "message": "Learning content generated"}

    def update_profile(self, **fields):
        self.calls.append(("update_profile", fields))
        if self.update_error:
            raise self.update_error
        self.profile.update(fields)
        return dict(self.profile)

    def get_profile(self):
        self.calls.append(("get_profile", None))
        return dict(self.profile)

    def list_concepts(self):
        self.calls.append(("list_concepts", None))
        return [dict(concept) for concept in self.concepts]

    def request_concept(self, concept_name, language=None):
        self.calls.append(("request_concept", concept_name))
        return self.request_concept_response or {"success": True, "message": "Concept added to learning path"}

    def complete_concept(self, concept_id):
        self.calls.append(("complete_concept", concept_id))
        for concept in self.concepts:
            if concept["id"] == concept_id:
                concept["is_completed"] = True
                return dict(concept)
        raise ApiError("concept not found", status_code=404)

    def names(self):
        return [name for name, _ in self.calls]


@pytest.fixture
def fake():
    return FakeClient()


def test_remote_result_wins_and_fills_missing_analysis(fake):
    fake.analyze_response = {
        "success": True,
        "category": "advanced",
        "total_score": 12.0,
        "percent": 80.0,
        "analysis": "",
    }
    completed = []

    result = QuizReconciler(fake).submit(LOWEST, completed.append, language="Python")

    assert result.category == "advanced"
    assert result.percent == 80.0
    assert "Advanced Track" in result.analysis
    assert completed == [result]
    assert fake.names() == ["analyze_quiz", "generate_initial", "get_profile"]
    assert ("generate_initial", "Python") in fake.calls


def test_remote_failure_falls_back_to_local_category(fake):
    fake.analyze_error = ApiError("Failed to analyze quiz", status_code=500)
    completed = []

    result = QuizReconciler(fake).submit(LOWEST, completed.append)

    assert result.category == "structured"
    assert result.total_score == pytest.approx(4.3)
    assert fake.profile["learning_level"] == "structured"
    assert fake.names() == ["analyze_quiz", "update_profile", "generate_initial", "get_profile"]
    assert len(completed) == 1


def test_unsuccessful_remote_payload_triggers_fallback(fake):
    fake.analyze_response = {"success": False}

    result = QuizReconciler(fake).submit(LOWEST)

    assert result.category == "structured"
    assert ("update_profile", {"learning_level": "structured"}) in fake.calls


def test_failed_fallback_raises_submission_error(fake):
    fake.analyze_error = ApiError("offline")
    fake.update_error = ApiError("offline")
    completed = []

    with pytest.raises(QuizSubmissionError):
        QuizReconciler(fake).submit(LOWEST, completed.append)

    assert completed == []
    assert "generate_initial" not in fake.names()


def test_onboarding_generation_failure_is_not_fatal(fake):
    fake.analyze_error = ApiError("offline")
    fake.generate_error = ApiError("upstream timeout", status_code=504)

    result = QuizReconciler(fake).submit(LOWEST)

    assert result.category == "structured"
    assert fake.profile["learning_level"] == "structured"


def test_session_expiry_propagates_from_either_path(fake):
    fake.analyze_error = SessionExpiredError("expired", status_code=401)
    with pytest.raises(SessionExpiredError):
        QuizReconciler(fake).submit(LOWEST)
    assert "update_profile" not in fake.names()

    other = FakeClient()
    other.analyze_error = ApiError("offline")
    other.update_error = SessionExpiredError("expired", status_code=401)
    with pytest.raises(SessionExpiredError):
        QuizReconciler(other).submit(LOWEST)


def test_concept_cache_orders_and_tracks_progress(fake):
    fake.concepts = [
        {"id": 2, "concept_name": "Loops", "order_index": 1, "is_completed": False},
        {"id": 1, "concept_name": "Variables", "order_index": 0, "is_completed": True},
    ]
    cache = ConceptListCache(fake, refetch_delay=0)

    cache.refresh()

    assert [c["concept_name"] for c in cache.concepts] == ["Variables", "Loops"]
    assert cache.progress == 50.0
    assert cache.mark_as_read(1) is False
    assert cache.mark_as_read(2) is True
    assert cache.progress == 100.0
    assert fake.names().count("complete_concept") == 1


def test_request_topic_uses_returned_description(fake):
    fake.request_concept_response = {"success": True, "description": "Recursion is a function calling itself."}
    cache = ConceptListCache(fake, refetch_delay=0)

    assert cache.request_topic("Recursion") == "Recursion is a function calling itself."
    assert fake.names() == ["request_concept", "list_concepts"]


def test_request_topic_refetches_when_description_missing(fake):
    fake.concepts = [{"id": 7, "concept_name": "Recursion", "order_index": 0, "concept_description": "stored text"}]
    cache = ConceptListCache(fake, refetch_delay=0)

    assert cache.request_topic(" Recursion ") == "stored text"

    fake.concepts = []
    with pytest.raises(ApiError):
        cache.request_topic("Graphs")


def test_detail_view_discards_result_after_close(fake):
    release = threading.Event()
    started = threading.Event()

    class SlowCache(ConceptListCache):
        def request_topic(self, concept_name, language=None):
            started.set()
            release.wait(timeout=5)
            return f"explanation of {concept_name}"

    with ThreadPoolExecutor(max_workers=1) as executor:
        view = ConceptDetailView(SlowCache(fake, refetch_delay=0), executor=executor)
        future = view.open("Recursion")
        assert started.wait(timeout=5)
        assert view.is_open
        view.close()
        release.set()
        assert future.result(timeout=5) is None

    assert view.description is None
    assert not view.is_open


def test_detail_view_keeps_result_while_open(fake):
    fake.request_concept_response = {"description": "Loops repeat a block."}
    with ThreadPoolExecutor(max_workers=1) as executor:
        view = ConceptDetailView(ConceptListCache(fake, refetch_delay=0), executor=executor)
        assert view.open("Loops").result(timeout=5) == "Loops repeat a block."

    assert view.description == "Loops repeat a block."
    assert view.error is None


def _response(status_code, payload):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


def test_request_maps_status_codes_to_errors():
    session = MagicMock()
    client = LearningPathClient("http://service/", token="tok", session=session)

    session.request.return_value = _response(200, {"concepts": [{"id": 1}]})
    assert client.list_concepts() == [{"id": 1}]
    args, kwargs = session.request.call_args
    assert args == ("GET", "http://service/learning-path")
    assert kwargs["headers"]["Authorization"] == "Bearer tok"

    session.request.return_value = _response(401, {"error": "Unauthorized"})
    with pytest.raises(SessionExpiredError):
        client.get_profile()

    session.request.return_value = _response(400, {"error": "Please complete the quiz first"})
    with pytest.raises(ApiError) as excinfo:
        client.generate_initial()
    assert str(excinfo.value) == "Please complete the quiz first"
    assert excinfo.value.status_code == 400

    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(ApiError):
        client.get_profile()


def test_login_failure_is_not_reported_as_expired_session():
    session = MagicMock()
    session.request.return_value = _response(401, {"error": "invalid credentials"})
    client = LearningPathClient("http://service", session=session)

    with pytest.raises(ApiError) as excinfo:
        client.login("asha", "wrong")
    assert not isinstance(excinfo.value, SessionExpiredError)
    assert str(excinfo.value) == "invalid credentials"
    assert client.token is None


def test_detail_view_shuts_down_its_own_executor(fake):
    fake.request_concept_response = {"description": "Graphs connect nodes."}
    with ConceptDetailView(ConceptListCache(fake, refetch_delay=0)) as view:
        assert view.open("Graphs").result(timeout=5) == "Graphs connect nodes."

    with pytest.raises(RuntimeError):
        view.executor.submit(lambda: None)


def test_detail_view_leaves_injected_executor_running(fake):
    fake.request_concept_response = {"description": "Loops repeat a block."}
    with ThreadPoolExecutor(max_workers=1) as executor:
        view = ConceptDetailView(ConceptListCache(fake, refetch_delay=0), executor=executor)
        view.open("Loops").result(timeout=5)
        view.shutdown()

        assert executor.submit(lambda: "still running").result(timeout=5) == "still running"
