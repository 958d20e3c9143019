"""Closed vocabularies for cuisine genre, dish type and cooking method.

The label lists are shared with the web front end and stored recipes, so the
exact spelling and order matter.
"""

from __future__ import annotations

from typing import Any, List, Optional

GENRE_OF_FOOD_OPTIONS: List[str] = [
    "American",
    "Italian",
    "Mexican",
    "Tex-Mex",
    "Latin American",
    "Caribbean",
    "French",
    "Spanish",
    "Greek",
    "Mediterranean",
    "Middle Eastern",
    "Indian",
    "Chinese",
    "Japanese",
    "Korean",
    "Thai",
    "Vietnamese",
    "Filipino",
    "African",
    "Ethiopian",
    "Moroccan",
    "German",
    "Eastern European",
    "British",
    "Fusion",
    "International",
    "Plant-Based",
    "Vegan",
    "Vegetarian",
    "Gluten-Free",
    "Keto",
]

TYPE_OF_DISH_OPTIONS: List[str] = [
    "Breakfast",
    "Brunch",
    "Lunch",
    "Dinner",
    "Snack",
    "Dessert",
    "Appetizer",
    "Side Dish",
    "Main Course",
    "Soup",
    "Salad",
    "Sandwich",
    "Pasta",
    "Pizza",
    "Rice Dish",
    "Noodles",
    "Casserole",
    "Stir-Fry",
    "Bowl",
    "Wrap",
    "Taco",
    "Burger",
    "Seafood",
    "Poultry",
    "Beef",
    "Pork",
    "Vegetarian Dish",
    "Vegan Dish",
    "Bread",
    "Muffins",
    "Cookies",
    "Cake",
    "Brownies",
    "Bars",
    "Pie",
    "Smoothie",
    "Sauce",
    "Dressing",
    "Dip",
    "Marinade",
]

METHOD_OF_COOKING_OPTIONS: List[str] = [
    "Stove",
    "Oven",
    "Microwave",
    "Air Fryer",
    "Instant Pot",
    "Grill",
    "Slow Cooker",
    "No-Cook",
]

MAX_DISH_TYPES = 3

_GENRES = frozenset(GENRE_OF_FOOD_OPTIONS)
_DISH_TYPES = frozenset(TYPE_OF_DISH_OPTIONS)
_METHODS = frozenset(METHOD_OF_COOKING_OPTIONS)


def _member(value, vocabulary: frozenset) -> Optional[str]:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    return candidate if candidate in vocabulary else None


def validate_genre(value) -> Optional[str]:
    """Return `value` if it is a known cuisine genre, else None."""
    return _member(value, _GENRES)


def validate_method(value) -> Optional[str]:
    """Return `value` if it is a known cooking method, else None."""
    return _member(value, _METHODS)


def validate_dish_types(values: Any) -> List[str]:
    """Keep known dish types in input order, drop repeats, cap at three."""
    if not isinstance(values, (list, tuple)):
        return []
    kept: List[str] = []
    for value in values:
        label = _member(value, _DISH_TYPES)
        if label is None or label in kept:
            continue
        kept.append(label)
        if len(kept) == MAX_DISH_TYPES:
            break
    return kept
