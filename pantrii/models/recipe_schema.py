from pydantic import BaseModel, Field
from typing import List, Optional

NUTRITION_FIELDS = ("calories", "protein_g", "fat_g", "carbs_g")


class IngredientItem(BaseModel):
    quantity: str = ""
    unit: str = ""
    item: str = ""
    notes: str = ""


class InstructionStep(BaseModel):
    step_number: int = Field(ge=1)
    text: str = Field(min_length=1)


class Nutrition(BaseModel):
    """Per-serving values; the two flags record where the numbers came from."""

    calories: Optional[float] = None
    protein_g: Optional[float] = None
    fat_g: Optional[float] = None
    carbs_g: Optional[float] = None
    ai_estimated: bool = False
    servings_used: Optional[float] = None

    def missing_fields(self) -> List[str]:
        return [name for name in NUTRITION_FIELDS if getattr(self, name) is None]


class RecipePayload(BaseModel):
    """Model-derived fields, as produced by the extraction pipeline and cached."""

    recipe_name: str = Field(min_length=1)
    author: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    servings: Optional[int] = Field(default=None, ge=0)
    prep_time_minutes: Optional[int] = Field(default=None, ge=0)
    cook_time_minutes: Optional[int] = Field(default=None, ge=0)
    ingredients: List[IngredientItem] = Field(default_factory=list)
    instructions: List[InstructionStep] = Field(default_factory=list)
    nutrition: Optional[Nutrition] = None
    genre_of_food: Optional[str] = None
    type_of_dish: Optional[List[str]] = None
    method_of_cooking: Optional[str] = None
    authors_notes: Optional[str] = None


class Recipe(RecipePayload):
    # user-supplied
    made_before: Optional[bool] = None
    user_notes: Optional[str] = None
    image: Optional[str] = None
    original_file: Optional[str] = None
    original_file_name: Optional[str] = None
    original_file_type: Optional[str] = None
    file_hash: Optional[str] = None


class StoredRecipe(Recipe):
    id: str
    owner_id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RecipeCreate(Recipe):
    made_before: bool


class RecipeUpdate(BaseModel):
    """Partial update: omitted fields keep their stored value, explicit nulls clear."""

    recipe_name: Optional[str] = Field(default=None, min_length=1)
    author: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    servings: Optional[int] = Field(default=None, ge=0)
    prep_time_minutes: Optional[int] = Field(default=None, ge=0)
    cook_time_minutes: Optional[int] = Field(default=None, ge=0)
    ingredients: Optional[List[IngredientItem]] = None
    instructions: Optional[List[InstructionStep]] = None
    nutrition: Optional[Nutrition] = None
    genre_of_food: Optional[str] = None
    type_of_dish: Optional[List[str]] = None
    method_of_cooking: Optional[str] = None
    authors_notes: Optional[str] = None
    made_before: Optional[bool] = None
    user_notes: Optional[str] = None
    image: Optional[str] = None
    original_file: Optional[str] = None
    original_file_name: Optional[str] = None
    original_file_type: Optional[str] = None
