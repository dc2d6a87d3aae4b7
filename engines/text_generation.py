"""Best-effort client for the hosted generative text API.

Upstream problems (missing key, HTTP errors, timeouts, malformed or too short
output) never propagate: callers receive ``None`` and substitute placeholder
text. Each call emits one JSON log record on the ``learnpath.llm`` channel.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional
from uuid import uuid4

import requests

from engines.prompt_selector import select_prompt
from env_validation import get_env_bool, safe_float, safe_int

logger = logging.getLogger(__name__)
_LLM_LOGGER = logging.getLogger("learnpath.llm")

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
GEMINI_URL = os.getenv("GEMINI_URL", "https://generativelanguage.googleapis.com/v1beta/models")
SEND_GENERATION_CONFIG = get_env_bool("SEND_GENERATION_CONFIG", True)

MIN_USEFUL_CHARS = 50


def _api_key() -> Optional[str]:
    return os.getenv("GEMINI_API_KEY") or None


def generation_config() -> Dict[str, Any]:
    return {
        "temperature": safe_float("LLM_TEMPERATURE", 0.7),
        "topK": safe_int("LLM_TOP_K", 40),
        "topP": safe_float("LLM_TOP_P", 0.95),
        "maxOutputTokens": safe_int("LLM_MAX_OUTPUT_TOKENS", 4096),
    }


def endpoint_url(model: Optional[str] = None) -> str:
    return f"{GEMINI_URL.rstrip('/')}/{model or GEMINI_MODEL}:generateContent"


def _extract_text(data: Any) -> Optional[str]:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return None
    texts = [part.get("text", "") for part in parts if isinstance(part, dict)]
    joined = "".join(texts).strip()
    return joined or None


def placeholder_description(concept_name: str) -> str:
    return (
        f"Comprehensive guide to {concept_name}. "
        "A detailed explanation is not available right now; open this concept again later to generate it."
    )


def generate_text(
    prompt: str,
    *,
    purpose: str = "generation",
    user_id: Optional[str] = None,
    min_chars: int = MIN_USEFUL_CHARS,
) -> Optional[str]:
    """Return generated text, or ``None`` when the service gave nothing usable."""

    api_key = _api_key()
    request_id = str(uuid4())
    start = time.perf_counter()
    outcome = "ok"
    text: Optional[str] = None
    status_code: Optional[int] = None
    try:
        if not api_key:
            outcome = "no_api_key"
            return None

        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if SEND_GENERATION_CONFIG:
            payload["generationConfig"] = generation_config()
        try:
            response = requests.post(
                endpoint_url(),
                json=payload,
                headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
                timeout=safe_int("LLM_TIMEOUT", 60),
            )
            status_code = response.status_code
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as exc:
            outcome = "timeout"
            logger.warning("Generation request %s timed out: %s", request_id, exc)
            return None
        except requests.HTTPError as exc:
            outcome = "http_error"
            body = exc.response.text[:300] if exc.response is not None else ""
            logger.warning("Generation request %s failed with HTTP %s: %s", request_id, status_code, body)
            return None
        except (requests.RequestException, ValueError) as exc:
            outcome = "error"
            logger.warning("Generation request %s failed: %s", request_id, exc)
            return None

        text = _extract_text(data)
        if text is None:
            outcome = "empty"
            return None
        if len(text) < min_chars:
            outcome = "too_short"
            logger.warning(
                "Generation request %s returned %s chars (< %s); discarding", request_id, len(text), min_chars
            )
            text = None
            return None
        return text
    finally:
        log_record = {
            "event": "llm_call",
            "request_id": request_id,
            "purpose": purpose,
            "user_id": user_id,
            "model": GEMINI_MODEL,
            "status_code": status_code,
            "outcome": outcome,
            "latency_ms": int((time.perf_counter() - start) * 1000),
            "chars": len(text) if text else 0,
        }
        _LLM_LOGGER.info(json.dumps(log_record, ensure_ascii=False))


def describe_concept(
    category: str,
    concept_name: str,
    language: Optional[str] = None,
    *,
    user_id: Optional[str] = None,
) -> str:
    """Generated explanation for a concept, or its deterministic placeholder."""

    prompt = select_prompt(category, concept_name, language)
    text = generate_text(prompt, purpose="concept_description", user_id=user_id)
    if text is None:
        return placeholder_description(concept_name)
    return text
