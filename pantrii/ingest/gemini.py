"""Gemini client construction and the ordered model fallback chain."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Tuple

import google.genai as genai
import httpx
from google.genai import errors

from pantrii.ingest.errors import (
    ConfigurationError,
    ExtractionError,
    ModelNotFoundError,
    RateLimitError,
    UpstreamError,
)
from pantrii.settings import Settings, settings

logger = logging.getLogger(__name__)


def build_client(cfg: Settings = settings) -> genai.Client:
    if not cfg.GEMINI_API_KEY:
        raise ConfigurationError(
            "Recipe scanning is not configured: GEMINI_API_KEY is not set. "
            "Add it to your .env or environment and restart."
        )
    return genai.Client(api_key=cfg.GEMINI_API_KEY)


def _retry_delay(details: Any) -> Optional[str]:
    if not isinstance(details, dict):
        return None
    body = details.get("error", details)
    if not isinstance(body, dict):
        return None
    for item in body.get("details") or []:
        if isinstance(item, dict) and item.get("retryDelay"):
            return str(item["retryDelay"])
    return None


def classify_api_error(exc: errors.APIError, model: str) -> ExtractionError:
    """Map an SDK error onto the pipeline's failure types."""
    code = getattr(exc, "code", None)
    detail = str(getattr(exc, "message", None) or exc)
    if code == 404:
        return ModelNotFoundError(f"Model {model} is not available: {detail[:200]}", [model])
    if code == 429:
        retry_after = _retry_delay(getattr(exc, "details", None))
        parts = ["API quota exceeded."]
        if getattr(exc, "message", None):
            parts.append(exc.message)
        if retry_after:
            parts.append(f"Please retry after {retry_after}.")
        else:
            parts.append("Please wait a moment and try again.")
        return RateLimitError(" ".join(parts), retry_after=retry_after)
    return UpstreamError(f"Gemini API error: {code} - {detail[:200]}", code=code)


class ModelChain:
    """Ordered Gemini models tried one after another.

    The chain advances only when the service reports that a model does not
    exist. The first model that accepts the request wins regardless of how
    useful its answer is; any other error ends the chain immediately.
    """

    FALLBACK_ON = (ModelNotFoundError,)

    def __init__(self, client: Any, models: Sequence[str], timeout: float | None = None):
        if not models:
            raise ConfigurationError("No Gemini models configured (GEMINI_MODELS is empty).")
        self.client = client
        self.models: List[str] = list(models)
        self.timeout = timeout

    async def _call(self, model: str, contents: Any, config: Any) -> Any:
        call = self.client.aio.models.generate_content(model=model, contents=contents, config=config)
        if self.timeout:
            return await asyncio.wait_for(call, timeout=self.timeout)
        return await call

    async def generate(self, contents: Any, config: Any, purpose: str = "extraction") -> Tuple[str, Any]:
        tried: List[str] = []
        for model in self.models:
            tried.append(model)
            logger.info("Trying model %s for %s", model, purpose)
            try:
                resp = await self._call(model, contents, config)
            except errors.APIError as exc:
                failure = classify_api_error(exc, model)
            except asyncio.TimeoutError:
                failure = UpstreamError(f"Gemini call to {model} timed out after {self.timeout:g}s")
            except httpx.HTTPError as exc:
                failure = UpstreamError(f"Could not reach Gemini ({model}): {exc}")
            else:
                logger.info("Successfully using model %s for %s", model, purpose)
                return model, resp

            if isinstance(failure, self.FALLBACK_ON):
                logger.info("Model %s not available for %s, trying next...", model, purpose)
                continue
            logger.error("Gemini %s call failed on %s: %s", purpose, model, failure.message)
            raise failure

        raise ModelNotFoundError(
            f"No available models found. Tried: {', '.join(tried)}. "
            "Check GEMINI_MODELS for model names your key can use.",
            tried,
        )
