"""HTTP client and reconciliation logic for learning path front ends.

``QuizReconciler`` runs a quiz submission end to end. The answers are scored
locally first using the same engine the server uses, then the server is asked
for the authoritative classification and the onboarding content. When that
path fails, the locally computed category is written straight to the profile
so the learner is never stuck behind the quiz.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import requests

from engines import scoring
from env_validation import safe_float, safe_int
from schemas import ClassificationResult, QuizAnswers

LOGGER = logging.getLogger("learnpath.client")

DEFAULT_TIMEOUT = safe_int("LEARNPATH_CLIENT_TIMEOUT", 120)
REFETCH_DELAY_SECONDS = safe_float("LEARNPATH_REFETCH_DELAY", 0.8)


class ApiError(Exception):
    """Raised when the service answers with an error or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(ApiError):
    """Raised on 401; the user has to log in again."""


class QuizSubmissionError(Exception):
    """Raised when neither the remote nor the local path could persist a result."""


class LearningPathClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"{method} {path} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code == 401:
            raise SessionExpiredError("Session expired, please sign in again", status_code=401)
        if response.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise ApiError(message or f"HTTP {response.status_code}", status_code=response.status_code)
        return data if isinstance(data, dict) else {}

    # ---------- auth ----------
    def register(self, user_id: str, password: str, *, name: str = "", email: Optional[str] = None) -> None:
        self._request("POST", "/auth/register", {"user_id": user_id, "password": password, "name": name, "email": email})

    def login(self, user_id: str, password: str) -> str:
        try:
            data = self._request("POST", "/auth/login", {"user_id": user_id, "password": password})
        except SessionExpiredError:
            raise ApiError("invalid credentials", status_code=401) from None
        self.token = data["token"]
        return self.token

    # ---------- quiz ----------
    def analyze_quiz(self, answers: QuizAnswers) -> Dict[str, Any]:
        return self._request("POST", "/analyze-quiz", answers.model_dump())

    def generate_initial(self, language: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"generate_initial": True}
        if language:
            payload["language"] = language
        return self._request("POST", "/generate-learning-content", payload)

    def request_concept(self, concept_name: str, language: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"concept_name": concept_name}
        if language:
            payload["language"] = language
        return self._request("POST", "/generate-learning-content", payload)

    # ---------- store ----------
    def get_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/profile")

    def update_profile(self, **fields: Any) -> Dict[str, Any]:
        return self._request("PATCH", "/profile", fields)

    def list_concepts(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", "/learning-path").get("concepts", []))

    def complete_concept(self, concept_id: int) -> Dict[str, Any]:
        return self._request("POST", f"/learning-path/{int(concept_id)}/complete")


class ProfileCache:
    """Last known profile snapshot."""

    def __init__(self, client: LearningPathClient) -> None:
        self.client = client
        self.profile: Optional[Dict[str, Any]] = None

    def refresh(self) -> Optional[Dict[str, Any]]:
        self.profile = self.client.get_profile()
        return self.profile

    @property
    def learning_level(self) -> Optional[str]:
        return (self.profile or {}).get("learning_level")


class QuizReconciler:
    def __init__(self, client: LearningPathClient, profile_cache: Optional[ProfileCache] = None) -> None:
        self.client = client
        self.profile_cache = profile_cache or ProfileCache(client)

    def _remote(self, answers: QuizAnswers, language: Optional[str]) -> Optional[ClassificationResult]:
        try:
            data = self.client.analyze_quiz(answers)
        except SessionExpiredError:
            raise
        except ApiError as exc:
            LOGGER.warning("Remote quiz analysis failed, using local result: %s", exc)
            return None
        if not data.get("success"):
            LOGGER.warning("Remote quiz analysis returned no success flag, using local result")
            return None
        try:
            result = ClassificationResult(
                category=data["category"],
                total_score=data["total_score"],
                percent=data["percent"],
                analysis=data.get("analysis") or "",
            )
        except (KeyError, ValueError) as exc:
            LOGGER.warning("Remote quiz analysis payload unusable (%s), using local result", exc)
            return None

        try:
            self.client.generate_initial(language)
        except SessionExpiredError:
            raise
        except ApiError as exc:
            LOGGER.warning("Onboarding content generation failed: %s", exc)
        return result

    def _local(self, local: ClassificationResult, language: Optional[str]) -> ClassificationResult:
        try:
            self.client.update_profile(learning_level=local.category)
        except SessionExpiredError:
            raise
        except ApiError as exc:
            raise QuizSubmissionError("Could not save your quiz result, please try again.") from exc

        try:
            self.client.generate_initial(language)
        except SessionExpiredError:
            raise
        except ApiError as exc:
            LOGGER.warning("Onboarding content generation after local fallback failed: %s", exc)
        return local

    def submit(
        self,
        answers: QuizAnswers,
        on_complete: Optional[Callable[[ClassificationResult], None]] = None,
        *,
        language: Optional[str] = None,
    ) -> ClassificationResult:
        local = scoring.evaluate(answers)
        remote = self._remote(answers, language)
        if remote is not None:
            result = remote if remote.analysis else remote.model_copy(
                update={"analysis": scoring.local_analysis(remote.category)}
            )
        else:
            result = self._local(local, language)

        try:
            self.profile_cache.refresh()
        except SessionExpiredError:
            raise
        except ApiError as exc:
            LOGGER.warning("Profile refresh after quiz failed: %s", exc)

        if on_complete is not None:
            on_complete(result)
        return result


class ConceptListCache:
    """Ordered snapshot of the learner's concepts kept in step with the server."""

    def __init__(self, client: LearningPathClient, *, refetch_delay: float = REFETCH_DELAY_SECONDS) -> None:
        self.client = client
        self.refetch_delay = refetch_delay
        self.concepts: List[Dict[str, Any]] = []

    def refresh(self) -> List[Dict[str, Any]]:
        self.concepts = sorted(self.client.list_concepts(), key=lambda c: c.get("order_index", 0))
        return self.concepts

    def find(self, concept_name: str) -> Optional[Dict[str, Any]]:
        for concept in self.concepts:
            if concept.get("concept_name") == concept_name:
                return concept
        return None

    @property
    def progress(self) -> float:
        if not self.concepts:
            return 0.0
        done = sum(1 for concept in self.concepts if concept.get("is_completed"))
        return done / len(self.concepts) * 100.0

    def mark_as_read(self, concept_id: int) -> bool:
        """Complete a concept; returns False when it already was."""
        current = next((c for c in self.concepts if c.get("id") == concept_id), None)
        if current is not None and current.get("is_completed"):
            return False
        updated = self.client.complete_concept(concept_id)
        self.concepts = [updated if c.get("id") == concept_id else c for c in self.concepts]
        return True

    def request_topic(self, concept_name: str, language: Optional[str] = None) -> str:
        data = self.client.request_concept(concept_name, language)
        description = data.get("description")
        if description:
            self.refresh()
            return description

        # Older servers only persist; give the write a moment to become visible.
        time.sleep(self.refetch_delay)
        self.refresh()
        concept = self.find(concept_name.strip())
        if concept is None:
            raise ApiError(f"Concept {concept_name!r} not found after generation")
        return concept["concept_description"]


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ConceptDetailView:
    """Detail panel for a single concept.

    Every ``open`` starts a background generation bound to a fresh token.
    Closing cancels the token; the request still runs to completion but its
    result is discarded.
    """

    def __init__(
        self,
        concepts: ConceptListCache,
        *,
        executor: Optional[ThreadPoolExecutor] = None,
        language: Optional[str] = None,
    ) -> None:
        self.concepts = concepts
        self.language = language
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=2)
        self.concept_name: Optional[str] = None
        self.description: Optional[str] = None
        self.error: Optional[str] = None
        self._token: Optional[CancellationToken] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def open(self, concept_name: str) -> Future:
        self.close()
        token = CancellationToken()
        with self._lock:
            self._token = token
            self.concept_name = concept_name
            self.description = None
            self.error = None
        return self.executor.submit(self._load, concept_name, token)

    def _load(self, concept_name: str, token: CancellationToken) -> Optional[str]:
        try:
            description = self.concepts.request_topic(concept_name, self.language)
        except ApiError as exc:
            with self._lock:
                if not token.cancelled:
                    self.error = str(exc)
            return None
        with self._lock:
            if token.cancelled:
                LOGGER.info("Discarding explanation for %s; detail view was closed", concept_name)
                return None
            self.description = description
        return description

    def close(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()

    def shutdown(self, wait: bool = True) -> None:
        """Close the view and stop the executor if this view created it."""
        self.close()
        if self._owns_executor:
            self.executor.shutdown(wait=wait)

    def __enter__(self) -> "ConceptDetailView":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
