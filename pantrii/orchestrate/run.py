"""Scan pipeline: hash -> cache -> extract -> cache write.

Used by the HTTP scan route and the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from typing import Dict, Optional

from pydantic import BaseModel

from pantrii.ingest.errors import UnsupportedFileError
from pantrii.ingest.hashing import content_hash
from pantrii.ingest.parse_llm_gemini import SUPPORTED_MIME_TYPES, RecipeExtractor
from pantrii.models.recipe_schema import RecipePayload
from pantrii.store.cache import RecipeCache
from pantrii.store.db import RecipeStore

logger = logging.getLogger(__name__)

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}


class ScanResult(BaseModel):
    recipe: RecipePayload
    file_hash: str
    mime_type: str
    cached: bool = False
    debug: bool = False
    # debug scans only: does the fresh extraction equal the cached entry?
    matches_cache: Optional[bool] = None
    # set when the caller already saved a recipe from this exact file
    saved_recipe_id: Optional[str] = None


def resolve_mime_type(declared: Optional[str], filename: Optional[str] = None) -> str:
    """Use the declared type when it is supported, else guess from the file name."""
    mime = (declared or "").split(";")[0].strip().lower()
    mime = _MIME_ALIASES.get(mime, mime)
    if mime in SUPPORTED_MIME_TYPES:
        return mime
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        guessed = _MIME_ALIASES.get(guessed or "", guessed)
        if guessed in SUPPORTED_MIME_TYPES:
            return guessed
    raise UnsupportedFileError(
        f"Unsupported file type {declared or filename or 'unknown'!r}. Upload a PNG, JPEG or PDF."
    )


class RecipeScanner:
    def __init__(self, extractor: RecipeExtractor, cache: RecipeCache, store: RecipeStore | None = None):
        self.extractor = extractor
        self.cache = cache
        self.store = store
        self._inflight: Dict[str, asyncio.Task] = {}

    async def scan(
        self,
        data: bytes,
        mime_type: Optional[str],
        owner_id: str,
        debug: bool = False,
        filename: Optional[str] = None,
    ) -> ScanResult:
        """Return the recipe for an uploaded document.

        A cache hit skips the model entirely. In debug mode the document is
        always extracted again and the result is compared with, but never
        written over, the cached entry.
        """
        if not data:
            raise UnsupportedFileError("The uploaded file is empty.")
        mime = resolve_mime_type(mime_type, filename)
        file_hash = content_hash(data)
        logger.info("Scan start | hash=%s owner=%s mime=%s debug=%s", file_hash[:12], owner_id, mime, debug)

        cached = await self.cache.get(file_hash)
        saved_id = await self._saved_recipe_id(owner_id, file_hash)

        if debug:
            recipe = await self.extractor.extract(data, mime)
            matches = None if cached is None else recipe == cached
            if matches is False:
                logger.warning("Debug extraction differs from cached entry | hash=%s", file_hash[:12])
            return ScanResult(
                recipe=recipe,
                file_hash=file_hash,
                mime_type=mime,
                debug=True,
                matches_cache=matches,
                saved_recipe_id=saved_id,
            )

        if cached is not None:
            return ScanResult(
                recipe=cached, file_hash=file_hash, mime_type=mime, cached=True, saved_recipe_id=saved_id
            )

        recipe = await self._extract_once(file_hash, data, mime, owner_id)
        return ScanResult(recipe=recipe, file_hash=file_hash, mime_type=mime, saved_recipe_id=saved_id)

    async def _extract_once(self, file_hash: str, data: bytes, mime: str, owner_id: str) -> RecipePayload:
        # Concurrent scans of the same file share one extraction. The task is
        # shielded so a caller that goes away still leaves a cache entry.
        task = self._inflight.get(file_hash)
        if task is None:
            task = asyncio.create_task(self._extract_and_cache(file_hash, data, mime, owner_id))
            self._inflight[file_hash] = task
            task.add_done_callback(lambda t: self._forget(file_hash, t))
        else:
            logger.info("Joining in-flight extraction | hash=%s", file_hash[:12])
        return await asyncio.shield(task)

    def _forget(self, file_hash: str, task: asyncio.Task) -> None:
        if self._inflight.get(file_hash) is task:
            del self._inflight[file_hash]
        if not task.cancelled() and task.exception() is not None:
            logger.info("Extraction task for %s ended with %s", file_hash[:12], type(task.exception()).__name__)

    async def _extract_and_cache(self, file_hash: str, data: bytes, mime: str, owner_id: str) -> RecipePayload:
        recipe = await self.extractor.extract(data, mime)
        await self.cache.put(file_hash, recipe, owner_id)
        return recipe

    async def _saved_recipe_id(self, owner_id: str, file_hash: str) -> Optional[str]:
        if self.store is None:
            return None
        try:
            saved = await self.store.afind_by_hash(owner_id, file_hash)
        except Exception:
            logger.exception("Could not look up saved recipes for %s", file_hash[:12])
            return None
        return saved.id if saved else None
