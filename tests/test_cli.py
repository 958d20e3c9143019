from typer.testing import CliRunner

from pantrii import cli
from pantrii.ingest.hashing import content_hash
from pantrii.models.recipe_schema import InstructionStep, RecipePayload
from pantrii.store.db import RecipeStore

runner = CliRunner()


def test_init_db_and_cache_lookup(tmp_path, monkeypatch):
    db_path = tmp_path / "recipes.db"
    monkeypatch.setattr(cli.settings, "DB_PATH", str(db_path))

    result = runner.invoke(cli.app, ["init-db"])
    assert result.exit_code == 0
    assert db_path.exists()

    card = tmp_path / "card.jpg"
    card.write_bytes(b"\xff\xd8\xff pancakes")
    assert runner.invoke(cli.app, ["cache-lookup", str(card)]).exit_code == 1

    RecipeStore(str(db_path)).put_cached(
        content_hash(card.read_bytes()),
        RecipePayload(recipe_name="Pancakes", instructions=[InstructionStep(step_number=1, text="Flip.")]),
        "user-1",
    )
    result = runner.invoke(cli.app, ["cache-lookup", str(card)])
    assert result.exit_code == 0
    assert "Pancakes" in result.output


def test_scan_without_api_key_exits_nonzero(tmp_path, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_AI_API_KEY", raising=False)
    card = tmp_path / "card.png"
    card.write_bytes(b"\x89PNG")

    result = runner.invoke(cli.app, ["scan", str(card)])
    assert result.exit_code == 1
    assert "GEMINI_API_KEY" in result.output
