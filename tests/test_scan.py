import asyncio

import pytest

from pantrii.ingest.errors import MissingInstructionsError, UnsupportedFileError
from pantrii.ingest.hashing import content_hash
from pantrii.models.recipe_schema import InstructionStep, RecipeCreate, RecipePayload
from pantrii.orchestrate.run import RecipeScanner, resolve_mime_type
from pantrii.store.cache import RecipeCache
from pantrii.store.db import RecipeStore

PDF = b"%PDF-1.7 lentil stew"


class DummyExtractor:
    """Counts calls and returns a fixed recipe, optionally after a pause."""

    def __init__(self, name="Lentil Stew", delay=0.0, error=None):
        self.name = name
        self.delay = delay
        self.error = error
        self.calls = 0

    async def extract(self, data, mime_type):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RecipePayload(
            recipe_name=self.name,
            instructions=[InstructionStep(step_number=1, text="Simmer.")],
        )


@pytest.fixture
def store(tmp_path):
    s = RecipeStore(str(tmp_path / "recipes.db"))
    s.ensure_db()
    return s


def make_scanner(store, extractor):
    return RecipeScanner(extractor, RecipeCache(store), store)


@pytest.mark.asyncio
async def test_miss_then_hit(store):
    extractor = DummyExtractor()
    scanner = make_scanner(store, extractor)

    first = await scanner.scan(PDF, "application/pdf", "user-1")
    assert first.cached is False
    assert first.file_hash == content_hash(PDF)
    assert first.recipe.recipe_name == "Lentil Stew"

    # cache entries are shared across users
    second = await scanner.scan(PDF, "application/pdf", "user-2")
    assert second.cached is True
    assert second.recipe == first.recipe
    assert extractor.calls == 1


@pytest.mark.asyncio
async def test_debug_scan_bypasses_and_never_writes_cache(store):
    scanner = make_scanner(store, DummyExtractor(name="Fresh"))

    result = await scanner.scan(PDF, "application/pdf", "user-1", debug=True)
    assert result.debug is True
    assert result.matches_cache is None
    assert store.get_cached(content_hash(PDF)) is None

    store.put_cached(content_hash(PDF), RecipePayload(recipe_name="Old", instructions=[]), "user-1")
    again = await scanner.scan(PDF, "application/pdf", "user-1", debug=True)
    assert again.recipe.recipe_name == "Fresh"
    assert again.matches_cache is False
    assert store.get_cached(content_hash(PDF)).recipe_name == "Old"


@pytest.mark.asyncio
async def test_failed_extraction_is_not_cached(store):
    extractor = DummyExtractor(error=MissingInstructionsError("no steps", attempts=2))
    scanner = make_scanner(store, extractor)

    with pytest.raises(MissingInstructionsError):
        await scanner.scan(PDF, "application/pdf", "user-1")
    assert store.get_cached(content_hash(PDF)) is None
    assert scanner._inflight == {}


@pytest.mark.asyncio
async def test_concurrent_scans_share_one_extraction(store):
    extractor = DummyExtractor(delay=0.05)
    scanner = make_scanner(store, extractor)

    a, b = await asyncio.gather(
        scanner.scan(PDF, "application/pdf", "user-1"),
        scanner.scan(PDF, "application/pdf", "user-2"),
    )
    assert a.recipe == b.recipe
    assert extractor.calls == 1
    assert store.get_cached(content_hash(PDF)) is not None


@pytest.mark.asyncio
async def test_cancelled_caller_still_fills_cache(store):
    extractor = DummyExtractor(delay=0.05)
    scanner = make_scanner(store, extractor)

    request = asyncio.create_task(scanner.scan(PDF, "application/pdf", "user-1"))
    while extractor.calls == 0:
        await asyncio.sleep(0.005)
    request.cancel()
    with pytest.raises(asyncio.CancelledError):
        await request

    for _ in range(50):
        if store.get_cached(content_hash(PDF)) is not None:
            break
        await asyncio.sleep(0.01)
    assert store.get_cached(content_hash(PDF)).recipe_name == "Lentil Stew"


@pytest.mark.asyncio
async def test_saved_recipe_is_reported(store):
    store.create_recipe(
        "user-1",
        RecipeCreate(recipe_name="Mine", made_before=True, file_hash=content_hash(PDF)),
    )
    scanner = make_scanner(store, DummyExtractor())

    mine = await scanner.scan(PDF, "application/pdf", "user-1")
    theirs = await scanner.scan(PDF, "application/pdf", "user-2")
    assert mine.saved_recipe_id is not None
    assert theirs.saved_recipe_id is None


def test_resolve_mime_type():
    assert resolve_mime_type("image/jpg") == "image/jpeg"
    assert resolve_mime_type("application/pdf; charset=binary") == "application/pdf"
    assert resolve_mime_type("application/octet-stream", "card.PNG") == "image/png"
    with pytest.raises(UnsupportedFileError):
        resolve_mime_type("image/gif", "card.gif")
    with pytest.raises(UnsupportedFileError):
        resolve_mime_type(None)
