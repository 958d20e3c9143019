"""Application settings loaded from environment (and .env).

This module provides a small Settings holder backed by environment variables.
Keep this file simple and import `settings` from other modules.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
from typing import List

# Load the JSON schema from file so it can be edited without touching code.
_schema_path = Path(__file__).parent / "schemas" / "recipe_response_schema.json"
if _schema_path.exists():
    with open(_schema_path, "r", encoding="utf8") as _fh:
        RECIPE_RESPONSE_SCHEMA = json.load(_fh)
else:
    RECIPE_RESPONSE_SCHEMA = {}

DEFAULT_MODELS = "gemini-3-flash-preview,gemini-2.5-flash"


def _get(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None:
        return default
    return v


def _split_models(raw: str | None) -> List[str]:
    return [m.strip() for m in (raw or "").split(",") if m.strip()]


@dataclass
class Settings:
    # API keys (GOOGLE_AI_API_KEY is the older name used by the web app)
    GEMINI_API_KEY: str | None = _get("GEMINI_API_KEY") or _get("GOOGLE_AI_API_KEY")

    # Ordered fallback chain; the next model is tried only on "model not found"
    GEMINI_MODELS: List[str] = field(
        default_factory=lambda: _split_models(_get("GEMINI_MODELS", DEFAULT_MODELS))
    )
    GEMINI_TIMEOUT_S: float = float(_get("GEMINI_TIMEOUT_S", "90"))
    EXTRACTION_MAX_OUTPUT_TOKENS: int = int(_get("EXTRACTION_MAX_OUTPUT_TOKENS", "8000"))
    NUTRITION_MAX_OUTPUT_TOKENS: int = int(_get("NUTRITION_MAX_OUTPUT_TOKENS", "2000"))
    # Optional directory where raw Gemini responses are written for debugging
    GEMINI_ARTIFACT_DIR: str | None = _get("GEMINI_ARTIFACT_DIR", None)

    # Storage
    DB_PATH: str = _get("DB_PATH", os.path.join("data", "recipes.db"))

    # Logging configuration
    # LOG_LEVEL can be DEBUG, INFO, WARNING, ERROR, or CRITICAL
    LOG_LEVEL: str = _get("LOG_LEVEL", "INFO")
    # Optional path to write logs to a file; if unset, logs go to stderr
    LOG_FILE: str | None = _get("LOG_FILE", None)


settings = Settings()

# RECIPE_RESPONSE_SCHEMA is loaded above and exposed from this module.


def validate_required() -> None:
    """Validate required secrets and raise a helpful RuntimeError if missing.

    This function checks environment variables at runtime so callers can load a .env first.
    """
    missing = []
    if not (os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_AI_API_KEY")):
        missing.append("GEMINI_API_KEY (Gemini / Google Generative AI key)")
    if missing:
        msg = (
            "Missing required environment variables: "
            + ", ".join(missing)
            + "\nPlease set them in your .env or environment and try again."
        )
        raise RuntimeError(msg)


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Configure top-level logging once for the CLI and the HTTP app."""
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = log_file or settings.LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        handlers=handlers,
    )

    # Quiet noisy third-party loggers while keeping our app logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)
