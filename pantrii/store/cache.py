"""Content-hash keyed cache of extracted recipes."""

from __future__ import annotations

import logging
from typing import Optional

from pantrii.models.recipe_schema import RecipePayload
from pantrii.store.db import RecipeStore

logger = logging.getLogger(__name__)


class RecipeCache:
    """Process-wide cache in front of the extractor.

    Entries are shared by every user: the same file content is recognized no
    matter who uploaded it first. Writes are insert-only (first writer wins)
    and never fail the caller.
    """

    def __init__(self, store: RecipeStore):
        self.store = store

    async def get(self, file_hash: str) -> Optional[RecipePayload]:
        try:
            cached = await self.store.aget_cached(file_hash)
        except Exception:
            logger.exception("Error getting cached recipe %s", file_hash)
            return None
        if cached is None:
            logger.info("Cache miss | hash=%s", file_hash[:12])
        else:
            logger.info("Cache hit | hash=%s recipe=%s", file_hash[:12], cached.recipe_name)
        return cached

    async def put(self, file_hash: str, recipe: RecipePayload, owner_id: str) -> bool:
        try:
            inserted = await self.store.aput_cached(file_hash, recipe, owner_id)
        except Exception:
            logger.exception("Error saving cached recipe %s; continuing without cache", file_hash)
            return False
        if not inserted:
            logger.info("Cache entry for %s already present; keeping the first one", file_hash[:12])
        return inserted
