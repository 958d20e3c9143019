"""Coerce untrusted model output into the canonical recipe shape.

Nothing in here raises on bad input: wrong types fall back to the documented
defaults and unknown taxonomy labels are dropped.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from pantrii.models.recipe_schema import (
    NUTRITION_FIELDS,
    IngredientItem,
    InstructionStep,
    Nutrition,
    RecipePayload,
)
from pantrii.models.taxonomy import validate_dish_types, validate_genre, validate_method

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Recipe"

# model replies sometimes use the camelCase names from the older prompt
_ALIASES = {
    "genre_of_food": ("genre_of_food", "genreOfFood"),
    "type_of_dish": ("type_of_dish", "typeOfDish"),
    "method_of_cooking": ("method_of_cooking", "methodOfCooking"),
    "authors_notes": ("authors_notes", "authorsNotes"),
}


def _pick(data: Dict[str, Any], field: str) -> Any:
    for key in _ALIASES.get(field, (field,)):
        if data.get(key) is not None:
            return data[key]
    return None


def is_mostly_uppercase(text: str) -> bool:
    letters = [c for c in text if c.isascii() and c.isalpha()]
    if not letters:
        return False
    upper = sum(1 for c in letters if c.isupper())
    return upper / len(letters) > 0.5


def to_title_case(text: str) -> str:
    """Title-case text that is mostly capitals; leave mixed-case text alone."""
    if not text or not is_mostly_uppercase(text):
        return text
    return " ".join(word[:1].upper() + word[1:] for word in text.lower().split(" "))


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _sub_text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value).strip()


def as_number(value: Any) -> Optional[float]:
    # bool is an int subclass; a JSON true is not a quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def as_count(value: Any) -> Optional[int]:
    number = as_number(value)
    if number is None or number < 0:
        return None
    return int(round(number))


def normalize_ingredients(raw: Any) -> List[IngredientItem]:
    if not isinstance(raw, list):
        return []
    items: List[IngredientItem] = []
    for entry in raw:
        if isinstance(entry, dict):
            items.append(
                IngredientItem(
                    quantity=_sub_text(entry.get("quantity")),
                    unit=_sub_text(entry.get("unit")),
                    item=_sub_text(entry.get("item")),
                    notes=_sub_text(entry.get("notes")),
                )
            )
        elif isinstance(entry, str) and entry.strip():
            items.append(IngredientItem(item=entry.strip()))
    return items


def normalize_instructions(raw: Any) -> List[InstructionStep]:
    """Number steps 1..n where the source omits them and drop blank steps."""
    if not isinstance(raw, list):
        return []
    steps: List[InstructionStep] = []
    for index, entry in enumerate(raw, start=1):
        if isinstance(entry, dict):
            text = _sub_text(entry.get("text"))
            number = entry.get("step_number")
        else:
            text = _sub_text(entry)
            number = None
        if not text:
            continue
        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            number = index
        steps.append(InstructionStep(step_number=number, text=text))
    return steps


def normalize_nutrition(raw: Any) -> Optional[Nutrition]:
    if not isinstance(raw, dict):
        return None
    values = {name: as_number(raw.get(name)) for name in NUTRITION_FIELDS}
    return Nutrition(**values)


def normalize_recipe(data: Any) -> RecipePayload:
    if not isinstance(data, dict):
        logger.warning("Model payload is %s, not an object; using empty recipe", type(data).__name__)
        data = {}

    name = clean_text(data.get("recipe_name")) or UNTITLED
    author = clean_text(data.get("author"))
    dish_types = validate_dish_types(_pick(data, "type_of_dish"))

    return RecipePayload(
        recipe_name=to_title_case(name),
        author=to_title_case(author) if author else None,
        description=clean_text(data.get("description")),
        link=clean_text(data.get("link")),
        servings=as_count(data.get("servings")),
        prep_time_minutes=as_count(data.get("prep_time_minutes")),
        cook_time_minutes=as_count(data.get("cook_time_minutes")),
        ingredients=normalize_ingredients(data.get("ingredients")),
        instructions=normalize_instructions(data.get("instructions")),
        nutrition=normalize_nutrition(data.get("nutrition")),
        genre_of_food=validate_genre(_pick(data, "genre_of_food")),
        type_of_dish=dish_types or None,
        method_of_cooking=validate_method(_pick(data, "method_of_cooking")),
        authors_notes=clean_text(_pick(data, "authors_notes")),
    )
