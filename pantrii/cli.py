"""Typer CLI for pantrii (scan, init-db, cache-lookup)."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console

from dotenv import load_dotenv
# load .env immediately so subsequent imports (which read settings at import time)
# pick up values from the .env file
load_dotenv()

from pantrii.settings import configure_logging, settings, validate_required

configure_logging()

from pantrii.ingest.errors import ExtractionError
from pantrii.ingest.hashing import hash_path, read_file
from pantrii.ingest.parse_llm_gemini import RecipeExtractor
from pantrii.orchestrate.run import RecipeScanner
from pantrii.store.cache import RecipeCache
from pantrii.store.db import RecipeStore

app = typer.Typer()
console = Console()


def _open_store() -> RecipeStore:
    store = RecipeStore(settings.DB_PATH)
    store.ensure_db()
    return store


async def _scan(path: Path, user: str, debug: bool):
    store = _open_store()
    scanner = RecipeScanner(RecipeExtractor.from_settings(settings), RecipeCache(store), store)
    data = await read_file(str(path))
    return await scanner.scan(data, None, user, debug=debug, filename=path.name)


@app.command()
def scan(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    user: str = typer.Option("cli", help="Owner id recorded on cache entries."),
    debug: bool = typer.Option(False, help="Always call the model and compare with the cache."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
):
    """Extract a recipe from an image or PDF."""
    try:
        validate_required()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    try:
        result = asyncio.run(_scan(path, user, debug))
    except ExtractionError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(result.model_dump_json())
        return

    recipe = result.recipe
    source = "cache" if result.cached else "model"
    console.print(f"[bold]{recipe.recipe_name}[/bold] ({source}, hash {result.file_hash[:12]})")
    if recipe.author:
        console.print(f"by {recipe.author}")
    if recipe.servings is not None:
        console.print(f"Serves {recipe.servings}")
    console.print(f"{len(recipe.ingredients)} ingredients, {len(recipe.instructions)} steps")
    if recipe.nutrition is not None:
        n = recipe.nutrition
        tag = " (estimated)" if n.ai_estimated else ""
        console.print(f"Nutrition{tag}: {n.calories} kcal, {n.protein_g}g protein, {n.fat_g}g fat, {n.carbs_g}g carbs")
    if result.debug and result.matches_cache is not None:
        console.print(f"Matches cache: {result.matches_cache}")
    if result.saved_recipe_id:
        console.print(f"Already saved as {result.saved_recipe_id}")


@app.command("init-db")
def init_db():
    """Create the sqlite tables if they do not exist."""
    _open_store()
    console.print(f"Database ready at {settings.DB_PATH}")


@app.command("cache-lookup")
def cache_lookup(path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True)):
    """Show the cached extraction for a file, if any."""
    file_hash = hash_path(str(path))
    cached = _open_store().get_cached(file_hash)
    if cached is None:
        console.print(f"No cache entry for {file_hash}")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(cached.model_dump()))


if __name__ == "__main__":
    app()
