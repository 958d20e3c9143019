"""sqlite3 persistence for saved recipes and the extraction cache.

One connection per operation. The async methods run the blocking sqlite
calls in a worker thread so request handlers never block the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pantrii.models.recipe_schema import (
    NUTRITION_FIELDS,
    Nutrition,
    Recipe,
    RecipePayload,
    StoredRecipe,
)
from pantrii.settings import settings

logger = logging.getLogger(__name__)

# Columns shared by the recipes and recipe_cache tables
PAYLOAD_COLUMNS = (
    "recipe_name",
    "author",
    "description",
    "link",
    "servings",
    "prep_time_minutes",
    "cook_time_minutes",
    "ingredients",
    "instructions",
    "nutrition",
    "genre_of_food",
    "type_of_dish",
    "method_of_cooking",
    "authors_notes",
)
USER_COLUMNS = (
    "made_before",
    "user_notes",
    "image",
    "original_file",
    "original_file_name",
    "original_file_type",
    "file_hash",
)
_JSON_COLUMNS = ("ingredients", "instructions", "type_of_dish")

_PAYLOAD_DDL = """
    recipe_name TEXT NOT NULL,
    author TEXT,
    description TEXT,
    link TEXT,
    servings INTEGER,
    prep_time_minutes INTEGER,
    cook_time_minutes INTEGER,
    ingredients TEXT NOT NULL,
    instructions TEXT NOT NULL,
    nutrition TEXT,
    genre_of_food TEXT,
    type_of_dish TEXT,
    method_of_cooking TEXT,
    authors_notes TEXT
"""


class RecordNotFound(LookupError):
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def encode_nutrition(nutrition: Optional[Nutrition | Dict[str, Any]]) -> Optional[str]:
    """Serialize nutrition with its provenance flags inline."""
    if nutrition is None:
        return None
    if isinstance(nutrition, dict):
        nutrition = Nutrition(**nutrition)
    body: Dict[str, Any] = {name: getattr(nutrition, name) for name in NUTRITION_FIELDS}
    body["_ai_estimated"] = nutrition.ai_estimated
    body["_servings_used"] = nutrition.servings_used
    return json.dumps(body)


def decode_nutrition(text: Optional[str]) -> Optional[Nutrition]:
    if not text:
        return None
    body = json.loads(text)
    return Nutrition(
        **{name: body.get(name) for name in NUTRITION_FIELDS},
        ai_estimated=bool(body.get("_ai_estimated", False)),
        servings_used=body.get("_servings_used"),
    )


def encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Model fields -> column values (JSON text blobs for nested data)."""
    row: Dict[str, Any] = {}
    for key, value in fields.items():
        if key == "nutrition":
            row[key] = encode_nutrition(value)
        elif key in ("ingredients", "instructions"):
            row[key] = json.dumps(value or [])
        elif key == "type_of_dish":
            row[key] = json.dumps(value) if value else None
        elif key == "made_before":
            row[key] = None if value is None else int(bool(value))
        else:
            row[key] = value
    return row


def decode_row(row: sqlite3.Row) -> Dict[str, Any]:
    out = dict(row)
    for key in _JSON_COLUMNS:
        if key in out and out[key] is not None:
            out[key] = json.loads(out[key])
    if "nutrition" in out:
        out["nutrition"] = decode_nutrition(out["nutrition"])
    if out.get("made_before") is not None:
        out["made_before"] = bool(out["made_before"])
    return out


class RecipeStore:
    def __init__(self, path: str = settings.DB_PATH):
        self.path = path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_db(self) -> None:
        if os.path.dirname(self.path):
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
        conn = self._connect()
        cur = conn.cursor()
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS recipes (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                {_PAYLOAD_DDL},
                made_before INTEGER,
                user_notes TEXT,
                image TEXT,
                original_file TEXT,
                original_file_name TEXT,
                original_file_type TEXT,
                file_hash TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS recipes_owner_idx ON recipes(owner_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS recipes_file_hash_idx ON recipes(file_hash)")
        # extraction cache: one row per file content, shared across users
        cur.execute(
            f"""
            CREATE TABLE IF NOT EXISTS recipe_cache (
                file_hash TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                {_PAYLOAD_DDL},
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.commit()
        conn.close()

    # -- recipes -----------------------------------------------------------

    def create_recipe(self, owner_id: str, recipe: Recipe) -> StoredRecipe:
        fields = recipe.model_dump(include=set(PAYLOAD_COLUMNS + USER_COLUMNS))
        row = encode_fields(fields)
        recipe_id = uuid.uuid4().hex
        now = _now()
        columns = ["id", "owner_id", *row.keys(), "created_at", "updated_at"]
        values = [recipe_id, owner_id, *row.values(), now, now]
        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO recipes ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                values,
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Created recipe %s for owner %s", recipe_id, owner_id)
        return self.get_recipe(owner_id, recipe_id)

    def get_recipe(self, owner_id: str, recipe_id: str) -> StoredRecipe:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM recipes WHERE id = ? AND owner_id = ?", (recipe_id, owner_id)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise RecordNotFound(recipe_id)
        return StoredRecipe(**decode_row(row))

    def list_recipes(self, owner_id: str) -> List[StoredRecipe]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM recipes WHERE owner_id = ? ORDER BY created_at DESC, rowid DESC",
                (owner_id,),
            ).fetchall()
        finally:
            conn.close()
        return [StoredRecipe(**decode_row(r)) for r in rows]

    def find_by_hash(self, owner_id: str, file_hash: str) -> Optional[StoredRecipe]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM recipes WHERE owner_id = ? AND file_hash = ? ORDER BY created_at DESC LIMIT 1",
                (owner_id, file_hash),
            ).fetchone()
        finally:
            conn.close()
        return StoredRecipe(**decode_row(row)) if row else None

    def update_recipe(self, owner_id: str, recipe_id: str, changes: Dict[str, Any]) -> StoredRecipe:
        """Apply only the keys present in `changes`; a None value clears the column."""
        if "recipe_name" in changes and not (changes["recipe_name"] or "").strip():
            raise ValueError("recipe_name cannot be cleared")
        if "made_before" in changes and changes["made_before"] is None:
            raise ValueError("made_before cannot be cleared")
        if "instructions" in changes and not changes["instructions"]:
            raise ValueError("a recipe needs at least one instruction")
        unknown = set(changes) - set(PAYLOAD_COLUMNS + USER_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown recipe fields: {', '.join(sorted(unknown))}")

        self.get_recipe(owner_id, recipe_id)
        row = encode_fields(changes)
        if row:
            assignments = ", ".join(f"{col} = ?" for col in row)
            conn = self._connect()
            try:
                conn.execute(
                    f"UPDATE recipes SET {assignments}, updated_at = ? WHERE id = ? AND owner_id = ?",
                    [*row.values(), _now(), recipe_id, owner_id],
                )
                conn.commit()
            finally:
                conn.close()
            logger.info("Updated recipe %s fields=%s", recipe_id, ",".join(sorted(row)))
        return self.get_recipe(owner_id, recipe_id)

    def delete_recipe(self, owner_id: str, recipe_id: str) -> None:
        conn = self._connect()
        try:
            cur = conn.execute("DELETE FROM recipes WHERE id = ? AND owner_id = ?", (recipe_id, owner_id))
            conn.commit()
        finally:
            conn.close()
        if cur.rowcount == 0:
            raise RecordNotFound(recipe_id)
        logger.info("Deleted recipe %s for owner %s", recipe_id, owner_id)

    # -- extraction cache ----------------------------------------------------

    def get_cached(self, file_hash: str) -> Optional[RecipePayload]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {', '.join(PAYLOAD_COLUMNS)} FROM recipe_cache WHERE file_hash = ?",
                (file_hash,),
            ).fetchone()
        finally:
            conn.close()
        return RecipePayload(**decode_row(row)) if row else None

    def put_cached(self, file_hash: str, recipe: RecipePayload, owner_id: str) -> bool:
        """Insert-only: returns False when an entry for this hash already exists."""
        row = encode_fields(recipe.model_dump(include=set(PAYLOAD_COLUMNS)))
        columns = ["file_hash", "owner_id", *row.keys()]
        conn = self._connect()
        try:
            cur = conn.execute(
                f"INSERT OR IGNORE INTO recipe_cache ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                [file_hash, owner_id, *row.values()],
            )
            conn.commit()
        finally:
            conn.close()
        return cur.rowcount == 1

    # -- async wrappers --------------------------------------------------------

    async def acreate_recipe(self, owner_id: str, recipe: Recipe) -> StoredRecipe:
        return await asyncio.to_thread(self.create_recipe, owner_id, recipe)

    async def aget_recipe(self, owner_id: str, recipe_id: str) -> StoredRecipe:
        return await asyncio.to_thread(self.get_recipe, owner_id, recipe_id)

    async def alist_recipes(self, owner_id: str) -> List[StoredRecipe]:
        return await asyncio.to_thread(self.list_recipes, owner_id)

    async def aupdate_recipe(self, owner_id: str, recipe_id: str, changes: Dict[str, Any]) -> StoredRecipe:
        return await asyncio.to_thread(self.update_recipe, owner_id, recipe_id, changes)

    async def adelete_recipe(self, owner_id: str, recipe_id: str) -> None:
        await asyncio.to_thread(self.delete_recipe, owner_id, recipe_id)

    async def aget_cached(self, file_hash: str) -> Optional[RecipePayload]:
        return await asyncio.to_thread(self.get_cached, file_hash)

    async def aput_cached(self, file_hash: str, recipe: RecipePayload, owner_id: str) -> bool:
        return await asyncio.to_thread(self.put_cached, file_hash, recipe, owner_id)

    async def afind_by_hash(self, owner_id: str, file_hash: str) -> Optional[StoredRecipe]:
        return await asyncio.to_thread(self.find_by_hash, owner_id, file_hash)
