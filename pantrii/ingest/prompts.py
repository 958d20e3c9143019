"""Prompt text for recipe extraction and nutrition estimation."""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable, List, NamedTuple, Optional, Tuple

from pantrii.models.recipe_schema import IngredientItem
from pantrii.models.taxonomy import (
    GENRE_OF_FOOD_OPTIONS,
    METHOD_OF_COOKING_OPTIONS,
    TYPE_OF_DISH_OPTIONS,
)

DEFAULT_SERVINGS = 4

_RANGE = re.compile(r"(\d+)\s*(?:-|–|—|to)\s*(\d+)", re.I)
_SINGLE = re.compile(r"(\d+)")

RETRY_EMPHASIS = "\n".join([
    "CRITICAL: THIS IS ATTEMPT #2 - YOU MUST FIND INSTRUCTIONS.",
    "Every recipe document contains instructions. Look more carefully for:",
    "- Any numbered or bulleted steps",
    "- Paragraphs describing how to cook or prepare",
    '- Sections labeled "Instructions", "Directions", "Method", "Steps", "How to make", "Preparation"',
    "- ANY text that tells the reader what to do with the ingredients",
    "DO NOT return an empty instructions array. Extract at least one instruction step.",
])

_NUTRITION_LINES = {
    "calories": '  "calories": number (calories PER SERVING)',
    "protein_g": '  "protein_g": number (protein in grams PER SERVING)',
    "fat_g": '  "fat_g": number (fat in grams PER SERVING)',
    "carbs_g": '  "carbs_g": number (carbohydrates in grams PER SERVING)',
}


def build_extraction_prompt(mime_type: str, schema: dict, attempt: int = 1) -> str:
    document = "PDF document" if "pdf" in mime_type else "image"
    parts = [
        RETRY_EMPHASIS if attempt > 1 else "",
        f"Extract the recipe details from this {document}. Follow this JSON schema exactly. "
        "If a field is missing or cannot be determined, return null for that field.",
        "OUTPUT JSON SCHEMA:",
        json.dumps(schema, ensure_ascii=False, indent=2),
        "\n".join([
            "- Extract ALL ingredients with their quantities, units, and items. Each ingredient must have at least an \"item\".",
            "- INSTRUCTIONS ARE MANDATORY. Every recipe has instructions, directions or steps.",
            "- Look for numbered steps, \"Instructions:\", \"Directions:\", \"Method:\", \"Steps:\", \"Preparation:\" "
            "or ANY text that describes how to prepare or cook the dish, in paragraphs, bullets or lists.",
            "- Each instruction has a \"step_number\" (1, 2, 3, ...) and \"text\". Never return an empty instructions array.",
            "- Extract the author if present (\"By John Smith\", \"Recipe by...\").",
            "- Extract the description if present (a brief introduction or summary).",
            "- Extract the recipe link/URL if present (\"Source: https://...\").",
            "- Extract author's notes if present (\"Note:\", \"Tip:\", \"Cook's note:\"); otherwise null.",
            "- Extract nutrition only if it is printed in the document; otherwise set nutrition to null.",
            f"- For \"genre_of_food\": select ONE value from this exact list: {', '.join(GENRE_OF_FOOD_OPTIONS)}. If uncertain, use null.",
            f"- For \"type_of_dish\": select 1-3 values from this exact list: {', '.join(TYPE_OF_DISH_OPTIONS)}. Return an array. If uncertain, use null.",
            f"- For \"method_of_cooking\": select ONE value from this exact list: {', '.join(METHOD_OF_COOKING_OPTIONS)}. If uncertain, use null.",
            "- Return ONLY valid JSON: no markdown, no code fences, no explanations. Start with { and end with }.",
            "- If a field cannot be determined, use null (not an empty string or 0).",
        ]),
    ]
    return "\n\n".join(p for p in parts if p)


class Servings(NamedTuple):
    count: int
    span: Optional[Tuple[int, int]] = None
    assumed: bool = False


def parse_servings(value: Any) -> Servings:
    """Serving count to assume for nutrition math.

    "4-6" and "4 to 6" give the rounded average; a bare number is used as is;
    anything else falls back to DEFAULT_SERVINGS.
    """
    if value is None or isinstance(value, bool):
        return Servings(DEFAULT_SERVINGS, assumed=True)
    if isinstance(value, float) and not math.isfinite(value):
        return Servings(DEFAULT_SERVINGS, assumed=True)
    if isinstance(value, (int, float)):
        count = int(value + 0.5)
        return Servings(count) if count > 0 else Servings(DEFAULT_SERVINGS, assumed=True)
    text = str(value)
    m = _RANGE.search(text)
    if m:
        low, high = int(m.group(1)), int(m.group(2))
        # round() is banker's rounding; 4.5 servings must become 5
        return Servings(int((low + high) / 2 + 0.5), (low, high))
    m = _SINGLE.search(text)
    if m and int(m.group(1)) > 0:
        return Servings(int(m.group(1)))
    return Servings(DEFAULT_SERVINGS, assumed=True)


def serving_note(servings: Servings) -> str:
    if servings.span:
        low, high = servings.span
        return f"This recipe serves {low}-{high} people. Use {servings.count} servings (the average) for calculations."
    if servings.assumed:
        return f"Assume this recipe serves {servings.count} people for calculation purposes."
    return f"This recipe serves {servings.count} people."


def format_ingredient(ing: IngredientItem) -> str:
    parts = [p for p in (ing.quantity, ing.unit, ing.item) if p]
    if ing.notes:
        parts.append(f"({ing.notes})")
    return " ".join(parts)


def build_nutrition_prompt(
    ingredients: Iterable[IngredientItem], servings: Servings, missing: List[str]
) -> str:
    structure = "{\n" + ",\n".join(_NUTRITION_LINES[f] for f in missing) + "\n}"
    ingredient_list = "\n".join(filter(None, (format_ingredient(i) for i in ingredients)))
    n = len(missing)
    return "\n\n".join([
        "Estimate the nutritional information PER SERVING for this recipe based on the ingredients list. "
        "Provide realistic estimates based on typical nutritional values for these ingredients.",
        f"Ingredients:\n{ingredient_list}",
        serving_note(servings),
        f"Return ONLY a JSON object with this exact structure (include ALL fields listed):\n{structure}",
        "\n".join([
            f"1. You MUST return ALL {n} field(s): {', '.join(missing)}",
            "2. Provide estimates PER SERVING (not for the entire recipe)",
            "3. Use realistic values based on standard nutritional databases",
            "4. Round to whole numbers (integers only, no decimals)",
            "5. Return ONLY valid JSON - no markdown, no code blocks, no explanations",
        ]),
    ])
