"""Environment variable validation and management."""

import logging
import os
from typing import Dict

logger = logging.getLogger(__name__)


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    # Nothing is strictly required: a missing generation key degrades content
    # to placeholder text instead of failing requests.
    required_vars: Dict[str, str] = {}

    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
    }

    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars = {
        "GEMINI_API_KEY": "Generative text API key (placeholders are used without it)",
        "GEMINI_MODEL": "Generative model identifier",
        "CORS_ALLOW_ORIGINS": "Comma separated list of allowed CORS origins",
    }

    missing = []
    for var, description in required_vars.items():
        if not os.getenv(var):
            missing.append(f"{var} ({description})")

    if missing:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    url_vars = {"GEMINI_URL", "LEARNPATH_API_URL"}
    for var in url_vars:
        value = os.getenv(var)
        if value and not (value.startswith("http://") or value.startswith("https://")):
            raise EnvironmentError(f"Invalid URL format for {var}: {value}")

    for name in ("LLM_TIMEOUT", "LLM_MAX_OUTPUT_TOKENS", "LLM_TOP_K"):
        value = os.getenv(name)
        if value is None:
            continue
        try:
            if int(value) <= 0:
                raise ValueError
        except ValueError:
            raise EnvironmentError(f"{name} must be a positive integer, got {value!r}") from None

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}


def safe_float(env_name: str, default: float) -> float:
    raw = os.getenv(env_name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def safe_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default
