import pytest
from fastapi.testclient import TestClient

from pantrii import main
from pantrii.ingest.errors import ConfigurationError, RateLimitError
from pantrii.models.recipe_schema import InstructionStep, RecipePayload
from pantrii.orchestrate.run import RecipeScanner
from pantrii.store.cache import RecipeCache
from pantrii.store.db import RecipeStore

PNG = b"\x89PNG recipe card"


class DummyExtractor:
    def __init__(self, error=None):
        self.error = error

    async def extract(self, data, mime_type):
        if self.error is not None:
            raise self.error
        return RecipePayload(
            recipe_name="Banana Bread",
            instructions=[InstructionStep(step_number=1, text="Bake for an hour.")],
            type_of_dish=["Bread"],
        )


@pytest.fixture
def store(tmp_path):
    s = RecipeStore(str(tmp_path / "recipes.db"))
    s.ensure_db()
    return s


@pytest.fixture
def client(store):
    scanner = RecipeScanner(DummyExtractor(), RecipeCache(store), store)
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_scanner] = lambda: scanner
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def scan(client, user="user-1", **data):
    return client.post(
        "/scan",
        files={"file": ("card.png", PNG, "image/png")},
        data=data,
        headers={"X-User": user},
    )


def test_scan_requires_auth(client):
    resp = client.post("/scan", files={"file": ("card.png", PNG, "image/png")})
    assert resp.status_code == 401


def test_scan_miss_then_hit(client):
    first = scan(client)
    assert first.status_code == 200
    body = first.json()
    assert body["recipe"]["recipe_name"] == "Banana Bread"
    assert body["cached"] is False
    assert body["mime_type"] == "image/png"

    second = scan(client, user="user-2")
    assert second.json()["cached"] is True
    assert second.json()["file_hash"] == body["file_hash"]


def test_debug_scan(client, store):
    resp = scan(client, debug="true")
    assert resp.status_code == 200
    assert resp.json()["debug"] is True
    assert store.get_cached(resp.json()["file_hash"]) is None


def test_unsupported_upload(client):
    resp = client.post(
        "/scan",
        files={"file": ("card.gif", b"GIF89a", "image/gif")},
        headers={"X-User": "user-1"},
    )
    assert resp.status_code == 415
    assert resp.json()["kind"] == "UnsupportedFileError"


def test_rate_limit_maps_to_429(store):
    scanner = RecipeScanner(
        DummyExtractor(error=RateLimitError("API quota exceeded.", retry_after="34s")), RecipeCache(store), store
    )
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_scanner] = lambda: scanner
    try:
        resp = scan(TestClient(main.app))
    finally:
        main.app.dependency_overrides.clear()
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "34"
    assert resp.json() == {"error": "API quota exceeded.", "kind": "RateLimitError"}


def test_missing_configuration_maps_to_503(store):
    def unconfigured():
        raise ConfigurationError("Recipe scanning is not configured")

    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_scanner] = unconfigured
    try:
        resp = scan(TestClient(main.app))
    finally:
        main.app.dependency_overrides.clear()
    assert resp.status_code == 503


def test_recipe_crud(client):
    headers = {"X-User": "user-1"}
    resp = client.post(
        "/recipes",
        json={
            "recipe_name": "Toast",
            "made_before": False,
            "type_of_dish": ["Breakfast", "Nope"],
            "genre_of_food": "Martian",
            "instructions": [{"step_number": 1, "text": "Toast the bread."}],
        },
        headers=headers,
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["type_of_dish"] == ["Breakfast"]
    assert created["genre_of_food"] is None

    assert client.post("/recipes", json={"recipe_name": "No flag"}, headers=headers).status_code == 422

    url = f"/recipes/{created['id']}"
    updated = client.put(url, json={"made_before": True, "user_notes": "extra butter"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["made_before"] is True
    assert updated.json()["recipe_name"] == "Toast"

    assert client.put(url, json={"made_before": None}, headers=headers).status_code == 400
    assert client.put(url, json={"recipe_name": ""}, headers=headers).status_code == 422
    assert client.put(url, json={"instructions": []}, headers=headers).status_code == 400

    assert client.get(url, headers={"X-User": "user-2"}).status_code == 404
    assert [r["id"] for r in client.get("/recipes", headers=headers).json()] == [created["id"]]

    assert client.delete(url, headers=headers).json() == {"success": True}
    assert client.get(url, headers=headers).status_code == 404


def test_bearer_token_identifies_owner(client):
    token = {"Authorization": "Bearer secret-token-123"}
    created = client.post("/recipes", json={"recipe_name": "Toast", "made_before": True}, headers=token)
    assert created.status_code == 201

    again = client.get(f"/recipes/{created.json()['id']}", headers=token)
    assert again.status_code == 200
    assert again.json()["owner_id"] == created.json()["owner_id"]

    other = client.get(f"/recipes/{created.json()['id']}", headers={"Authorization": "Bearer another-token"})
    assert other.status_code == 404
    assert client.get("/recipes", headers={"Authorization": "Basic dXNlcjpwdw=="}).status_code == 401
    assert client.get("/recipes", headers={"Authorization": "Bearer "}).status_code == 401
