# app.py: Acharya learning path service
# - Quiz classification (shared scoring engine) with LLM-written analysis
# - Onboarding catalog + on-demand concept explanations (best-effort LLM, placeholder fallback)
# - Bearer token auth on every non-auth route, CORS preflight for browser clients

import hashlib
import hmac
import json
import logging
import os
import secrets
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import db
from engines import assessment
from engines.materializer import (
    ClassificationMissingError,
    ConceptNotFoundError,
    ContentMaterializer,
    resolve_category,
)
from schemas import (
    AnalyzeQuizResponse,
    Concept,
    GenerateContentRequest,
    GenerateContentResponse,
    LoginBody,
    Profile,
    ProfileUpdate,
    QuizAnswers,
    QuizHistory,
    RegisterBody,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info("Learning path service ready (db=%s)", db.DB_PATH)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Acharya Learning Path", version="1.0.0", lifespan=_lifespan)

TOKENS: dict[str, str] = {}

_PUBLIC_PATHS = frozenset({"/", "/health", "/auth/register", "/auth/login", "/docs", "/openapi.json"})

MATERIALIZER = ContentMaterializer()

_PBKDF2_ITERATIONS = 150_000
_PBKDF2_DIGEST = "sha256"


def _normalize_path(path: str) -> str:
    if not path or path == "/":
        return "/"
    return path.rstrip("/")


def _extract_token(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    candidate = header_value.strip()
    if not candidate:
        return None
    if " " in candidate:
        prefix, token = candidate.split(" ", 1)
        if prefix.lower() != "bearer":
            return None
        candidate = token.strip()
    return candidate or None


def _authenticate_request(request: Request) -> Optional[str]:
    header_token = _extract_token(request.headers.get("authorization"))
    if header_token and header_token in TOKENS:
        return TOKENS[header_token]
    return None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.middleware("http")
async def _enforce_token(request: Request, call_next):
    normalized_path = _normalize_path(request.url.path)
    if request.method != "OPTIONS" and normalized_path not in _PUBLIC_PATHS:
        user_id = _authenticate_request(request)
        if not user_id:
            return Response(
                status_code=401,
                content=json.dumps({"error": "Unauthorized"}),
                media_type="application/json",
            )
        request.state.user_id = user_id
    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()],
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Client-Info", "Apikey"],
)


@app.exception_handler(HTTPException)
async def _http_error(_: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_error(_: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        parts.append(f"{where}: {err.get('msg')}" if where else str(err.get("msg")))
    problems = "; ".join(parts)
    return _error(400, f"Invalid request: {problems}" if problems else "Invalid request")


@app.exception_handler(sqlite3.Error)
async def _store_error(_: Request, exc: sqlite3.Error):
    logger.error("Store operation failed: %s", exc, exc_info=True)
    return _error(500, "Failed to persist learning data")


# ---------- Helpers ----------
def _generate_salt() -> str:
    return secrets.token_bytes(16).hex()


def _pbkdf2_hash(password: str, salt_hex: str) -> str:
    try:
        salt_bytes = bytes.fromhex(salt_hex)
    except ValueError:
        raise ValueError("Invalid salt for password hashing") from None
    return hashlib.pbkdf2_hmac(
        _PBKDF2_DIGEST,
        password.encode("utf-8"),
        salt_bytes,
        _PBKDF2_ITERATIONS,
    ).hex()


def _hash_password(password: str) -> tuple[str, str]:
    salt_hex = _generate_salt()
    return _pbkdf2_hash(password, salt_hex), salt_hex


def _verify_password(password: str, stored_hash: str, stored_salt: Optional[str]) -> bool:
    if not stored_salt:
        return False
    try:
        derived = _pbkdf2_hash(password, stored_salt)
    except ValueError:
        return False
    return hmac.compare_digest(stored_hash or "", derived)


def _current_user(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


@app.get("/")
@app.get("/health")
def health():
    return {"ok": True}


# ---------- Auth ----------
@app.post("/auth/register")
def auth_register(body: RegisterBody):
    if db.get_account(body.user_id):
        raise HTTPException(status_code=400, detail="user_id exists")
    email = (body.email or "").strip() or None
    if email and db.get_account_by_email(email):
        raise HTTPException(status_code=400, detail="email exists")
    pw_hash, pw_salt = _hash_password(body.password)
    db.create_account(body.user_id, email, pw_hash, pw_salt)
    db.create_profile(body.user_id, body.name.strip() or body.user_id)
    return {"ok": True}


@app.post("/auth/login")
def auth_login(body: LoginBody):
    row = db.get_account(body.user_id)
    if not row or not _verify_password(body.password, row["pw_hash"], row["pw_salt"]):
        raise HTTPException(status_code=401, detail="invalid credentials")
    token = secrets.token_urlsafe(24)
    TOKENS[token] = body.user_id
    return {"token": token, "user_id": body.user_id}


@app.post("/auth/logout")
def auth_logout(request: Request):
    _current_user(request)
    token = _extract_token(request.headers.get("authorization"))
    TOKENS.pop(token or "", None)
    return {"ok": True}


# ---------- Quiz ----------
@app.post("/analyze-quiz", response_model=AnalyzeQuizResponse)
def analyze_quiz(body: QuizAnswers, request: Request):
    user_id = _current_user(request)
    try:
        result = assessment.analyze_quiz(user_id, body)
    except assessment.ProfileMissingError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return AnalyzeQuizResponse(success=True, **result.model_dump())


@app.get("/quiz-results", response_model=QuizHistory)
def quiz_results(request: Request, limit: int = 20):
    user_id = _current_user(request)
    return {"results": db.list_quiz_results(user_id, limit=max(1, min(limit, 100)))}


# ---------- Learning content ----------
@app.post("/generate-learning-content", response_model=GenerateContentResponse, response_model_exclude_none=True)
def generate_learning_content(body: GenerateContentRequest, request: Request):
    user_id = _current_user(request)
    concept_name = body.requested_concept()
    if not body.generate_initial and not concept_name:
        raise HTTPException(status_code=400, detail="Invalid request")

    try:
        category = resolve_category(user_id, body.skill_level)
    except ClassificationMissingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if body.generate_initial:
        result = MATERIALIZER.generate_initial(user_id, category, body.language)
    else:
        result = MATERIALIZER.upsert_concept(user_id, concept_name, category, body.language)

    payload: dict[str, Any] = {"success": True, "message": result.message}
    if result.description is not None:
        payload["description"] = result.description
    if result.concept is not None:
        payload["concept"] = result.concept
    return payload


@app.get("/learning-path")
def learning_path(request: Request):
    user_id = _current_user(request)
    concepts = db.list_concepts(user_id)
    completed = sum(1 for concept in concepts if concept["is_completed"])
    return {
        "concepts": [Concept(**concept).model_dump() for concept in concepts],
        "completed": completed,
        "total": len(concepts),
    }


@app.post("/learning-path/{concept_id}/complete", response_model=Concept)
def complete_concept(concept_id: int, request: Request):
    user_id = _current_user(request)
    try:
        return MATERIALIZER.mark_completed(user_id, concept_id)
    except ConceptNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ---------- Profile ----------
@app.get("/profile", response_model=Profile)
def profile_get(request: Request):
    user_id = _current_user(request)
    profile = db.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="profile not found")
    return profile


@app.patch("/profile", response_model=Profile)
def profile_update(body: ProfileUpdate, request: Request):
    user_id = _current_user(request)
    profile = db.update_profile(user_id, body.changes())
    if profile is None:
        raise HTTPException(status_code=404, detail="profile not found")
    return profile


if __name__ == "__main__":
    import uvicorn

    from env_validation import safe_int

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=safe_int("PORT", 8000))
