"""
Gemini vision recipe extractor: document bytes in, normalized recipe out.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import jsonschema
from google.genai import types

from pantrii.ingest.errors import (
    MalformedResponseError,
    MissingInstructionsError,
    RateLimitError,
    UnsupportedFileError,
)
from pantrii.ingest.gemini import ModelChain, build_client
from pantrii.ingest.normalize import as_number, normalize_recipe
from pantrii.ingest.prompts import (
    Servings,
    build_extraction_prompt,
    build_nutrition_prompt,
    parse_servings,
)
from pantrii.ingest.repair import extract_response_text, parse_model_json
from pantrii.models.recipe_schema import (
    NUTRITION_FIELDS,
    IngredientItem,
    Nutrition,
    RecipePayload,
)
from pantrii.settings import RECIPE_RESPONSE_SCHEMA, Settings, settings

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = ("image/png", "image/jpeg", "application/pdf")
MAX_ATTEMPTS = 2

_NUTRIENT_PAIR = re.compile(r'"(calories|protein_g|fat_g|carbs_g)"\s*:\s*(\d+(?:\.\d+)?)')


def merge_nutrition(
    existing: Optional[Nutrition], estimate: Dict[str, Optional[float]], servings_used: float
) -> Optional[Nutrition]:
    """Fill only the empty slots of `existing` from `estimate`.

    Values read from the document always win. The provenance flags are set
    only when at least one slot was actually filled.
    """
    base = existing or Nutrition()
    values: Dict[str, Optional[float]] = {}
    filled = False
    for name in NUTRITION_FIELDS:
        current = getattr(base, name)
        if current is None and estimate.get(name) is not None:
            values[name] = estimate[name]
            filled = True
        else:
            values[name] = current
    if not filled:
        return existing
    return Nutrition(**values, ai_estimated=True, servings_used=servings_used)


def _scan_nutrient_pairs(raw: str) -> Dict[str, float]:
    return {name: float(value) for name, value in _NUTRIENT_PAIR.findall(raw or "")}


class RecipeExtractor:
    """Drive Gemini through extraction, one retry, and nutrition completion."""

    def __init__(
        self,
        client: Any,
        models: Sequence[str] = tuple(settings.GEMINI_MODELS),
        timeout: float | None = settings.GEMINI_TIMEOUT_S,
        schema: Dict[str, Any] | None = None,
        extraction_max_tokens: int = settings.EXTRACTION_MAX_OUTPUT_TOKENS,
        nutrition_max_tokens: int = settings.NUTRITION_MAX_OUTPUT_TOKENS,
        artifact_dir: str | None = settings.GEMINI_ARTIFACT_DIR,
    ):
        self.chain = ModelChain(client, models, timeout=timeout)
        self.schema = schema if schema is not None else RECIPE_RESPONSE_SCHEMA
        self.extraction_max_tokens = extraction_max_tokens
        self.nutrition_max_tokens = nutrition_max_tokens
        self.artifact_dir = artifact_dir

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "RecipeExtractor":
        return cls(
            build_client(cfg),
            models=cfg.GEMINI_MODELS,
            timeout=cfg.GEMINI_TIMEOUT_S,
            extraction_max_tokens=cfg.EXTRACTION_MAX_OUTPUT_TOKENS,
            nutrition_max_tokens=cfg.NUTRITION_MAX_OUTPUT_TOKENS,
            artifact_dir=cfg.GEMINI_ARTIFACT_DIR,
        )

    async def extract(self, data: bytes, mime_type: str) -> RecipePayload:
        """Extract a recipe from an image or PDF.

        A reply without instructions is retried once with a more insistent
        prompt; a second empty reply is terminal. Every other failure ends
        the extraction on the attempt where it happened.
        """
        if not data:
            raise UnsupportedFileError("The uploaded file is empty.")
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedFileError(
                f"Unsupported file type {mime_type!r}. Upload a PNG, JPEG or PDF."
            )

        attempt = 1
        while True:
            try:
                recipe, raw = await self._attempt(data, mime_type, attempt)
            except MissingInstructionsError:
                if attempt >= MAX_ATTEMPTS:
                    raise MissingInstructionsError(
                        "Could not extract instructions after multiple attempts. The document must "
                        "contain cooking steps; try a clearer photo or enter the recipe manually.",
                        attempts=attempt,
                    )
                logger.warning("Attempt %d: no instructions found; retrying with a more explicit prompt", attempt)
                attempt += 1
                continue
            logger.info(
                "Extracted recipe %r on attempt %d (ingredients=%d instructions=%d)",
                recipe.recipe_name,
                attempt,
                len(recipe.ingredients),
                len(recipe.instructions),
            )
            return await self.complete_nutrition(recipe, raw.get("servings"))

    async def _attempt(self, data: bytes, mime_type: str, attempt: int) -> Tuple[RecipePayload, Dict[str, Any]]:
        prompt = build_extraction_prompt(mime_type, self.schema, attempt)
        contents = [prompt, types.Part.from_bytes(data=data, mime_type=mime_type)]
        config = types.GenerateContentConfig(
            temperature=0.1,
            max_output_tokens=self.extraction_max_tokens,
            response_mime_type="application/json",
        )
        model, resp = await self.chain.generate(contents, config, purpose="extraction")

        raw = extract_response_text(resp)
        if not raw:
            raise MalformedResponseError(f"Empty response from {model}.")
        self._write_artifact("extraction", raw)

        payload = parse_model_json(raw)
        if payload is None:
            logger.error(
                "Failed to parse %s response. length=%d head=%s tail=%s",
                model,
                len(raw),
                raw[:1000],
                raw[-500:],
            )
            raise MalformedResponseError("Failed to parse recipe data from the model response.")

        # Quick schema alignment check; the normalizer fixes what it can
        try:
            jsonschema.validate(instance=payload, schema=self.schema)
        except jsonschema.ValidationError as e:
            logger.warning("Gemini response does not align with RECIPE_RESPONSE_SCHEMA: %s", e.message)

        recipe = normalize_recipe(payload)
        if not recipe.instructions:
            raise MissingInstructionsError(f"Attempt {attempt}: no instructions found", attempts=attempt)
        return recipe, payload

    async def complete_nutrition(self, recipe: RecipePayload, raw_servings: Any = None) -> RecipePayload:
        """Estimate whichever nutrition values the document did not print.

        Never fails the extraction: on any error the recipe is returned with
        its nutrition as read and no estimation flag.
        """
        missing = (recipe.nutrition or Nutrition()).missing_fields()
        if not missing:
            return recipe
        try:
            servings = parse_servings(recipe.servings if recipe.servings is not None else raw_servings)
            logger.info("Nutrition fields missing: %s, estimating for %d servings", ", ".join(missing), servings.count)
            estimate = await self.estimate_nutrition(recipe.ingredients, servings, missing)
        except RateLimitError:
            logger.warning("Nutrition estimation quota exceeded - skipping estimation")
            return recipe
        except Exception:
            logger.exception("Failed to estimate nutrition, keeping original")
            return recipe

        merged = merge_nutrition(recipe.nutrition, estimate, servings.count)
        logger.info("Final merged nutrition: %s", merged)
        return recipe.model_copy(update={"nutrition": merged})

    async def estimate_nutrition(
        self, ingredients: List[IngredientItem], servings: Servings, missing: List[str]
    ) -> Dict[str, Optional[float]]:
        prompt = build_nutrition_prompt(ingredients, servings, missing)
        config = types.GenerateContentConfig(
            temperature=0.3,
            max_output_tokens=self.nutrition_max_tokens,
            response_mime_type="application/json",
        )
        model, resp = await self.chain.generate([prompt], config, purpose="nutrition")
        raw = extract_response_text(resp) or ""
        self._write_artifact("nutrition", raw)

        data = parse_model_json(raw)
        if data is None:
            data = _scan_nutrient_pairs(raw)
            if not data:
                raise MalformedResponseError("Failed to parse nutrition estimation data.")
            logger.info("Recovered partial nutrition data from incomplete %s response", model)

        result: Dict[str, Optional[float]] = {}
        for name in missing:
            value = as_number(data.get(name))
            if value is None:
                logger.warning("Model did not return %s value", name)
            result[name] = int(value + 0.5) if value is not None else None
        return result

    def _write_artifact(self, kind: str, raw: str) -> None:
        # Persist raw Gemini responses for debugging when configured
        if not self.artifact_dir:
            return
        try:
            os.makedirs(self.artifact_dir, exist_ok=True)
            ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
            path = os.path.join(self.artifact_dir, f"gemini_{kind}_{ts}.txt")
            with open(path, "w", encoding="utf-8") as f:
                f.write(raw)
            logger.info("Wrote Gemini raw response -> %s", path)
        except OSError:
            logger.exception("Failed to write Gemini artifacts")
