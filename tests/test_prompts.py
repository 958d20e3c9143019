from pantrii.ingest.prompts import (
    RETRY_EMPHASIS,
    Servings,
    build_extraction_prompt,
    build_nutrition_prompt,
    parse_servings,
)
from pantrii.models.recipe_schema import IngredientItem
from pantrii.settings import RECIPE_RESPONSE_SCHEMA


def test_parse_servings():
    assert parse_servings("4-6") == Servings(5, (4, 6))
    assert parse_servings("4 to 6").count == 5
    assert parse_servings("Serves 2–3").count == 3
    assert parse_servings("4") == Servings(4)
    assert parse_servings(6) == Servings(6)
    assert parse_servings(None) == Servings(4, assumed=True)
    assert parse_servings("a crowd").assumed is True
    assert parse_servings(0).count == 4


def test_extraction_prompt_escalates_on_retry():
    first = build_extraction_prompt("image/jpeg", RECIPE_RESPONSE_SCHEMA)
    second = build_extraction_prompt("application/pdf", RECIPE_RESPONSE_SCHEMA, attempt=2)

    assert "from this image" in first
    assert RETRY_EMPHASIS not in first
    assert second.startswith(RETRY_EMPHASIS)
    assert "from this PDF document" in second
    assert '"recipe_name"' in first
    assert "Air Fryer" in first


def test_nutrition_prompt_lists_only_missing_fields():
    ingredients = [
        IngredientItem(quantity="2", unit="cups", item="rice"),
        IngredientItem(item="salt", notes="to taste"),
    ]
    prompt = build_nutrition_prompt(ingredients, parse_servings("4-6"), ["protein_g", "carbs_g"])

    assert "2 cups rice" in prompt
    assert "salt (to taste)" in prompt
    assert "serves 4-6 people. Use 5 servings" in prompt
    assert '"protein_g"' in prompt
    assert '"calories"' not in prompt
    assert "ALL 2 field(s): protein_g, carbs_g" in prompt


def test_parse_servings_non_finite_falls_back():
    assert parse_servings(float("nan")) == Servings(4, assumed=True)
    assert parse_servings(float("inf")) == Servings(4, assumed=True)
