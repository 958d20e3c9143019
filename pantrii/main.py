import re
from typing import Optional, List, Dict

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from pantrii.ingest.errors import ExtractionError, RateLimitError
from pantrii.ingest.hashing import content_hash
from pantrii.ingest.parse_llm_gemini import RecipeExtractor
from pantrii.models.recipe_schema import RecipeCreate, RecipeUpdate, StoredRecipe
from pantrii.models.taxonomy import validate_dish_types, validate_genre, validate_method
from pantrii.orchestrate.run import RecipeScanner, ScanResult
from pantrii.settings import configure_logging, settings
from pantrii.store.cache import RecipeCache
from pantrii.store.db import RecipeStore, RecordNotFound

app = FastAPI(title="Pantrii Recipe Scanner")


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    scheme, _, token = (authorization or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(None), x_user: Optional[str] = Header(None)
) -> Dict[str, str]:
    """Owner id for the request; saved recipes are scoped by it.

    `X-User` names the owner directly (local use). A bearer token is reduced
    to a stable short id. Stand-in until a real session provider is wired in.
    """
    if x_user and x_user.strip():
        return {"uid": x_user.strip()}
    token = _bearer_token(authorization)
    if token:
        return {"uid": content_hash(token.encode("utf-8"))[:16]}
    raise HTTPException(status_code=401, detail="Sign in to scan recipes: send X-User or Authorization: Bearer <token>")


def get_store() -> RecipeStore:
    store = getattr(app.state, "store", None)
    if store is None:
        store = RecipeStore(settings.DB_PATH)
        store.ensure_db()
        app.state.store = store
    return store


def get_scanner(store: RecipeStore = Depends(get_store)) -> RecipeScanner:
    scanner = getattr(app.state, "scanner", None)
    if scanner is None:
        # raises ConfigurationError (503) when no API key is configured
        scanner = RecipeScanner(RecipeExtractor.from_settings(settings), RecipeCache(store), store)
        app.state.scanner = scanner
    return scanner


@app.on_event("startup")
def startup():
    configure_logging()
    get_store()


@app.exception_handler(ExtractionError)
async def extraction_error_handler(request: Request, exc: ExtractionError):
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        m = re.match(r"\d+", exc.retry_after)
        if m:
            headers["Retry-After"] = m.group(0)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "kind": type(exc).__name__},
        headers=headers,
    )


def _clean_taxonomy(fields: Dict) -> Dict:
    # user edits go through the same closed vocabularies as model output
    if "genre_of_food" in fields:
        fields["genre_of_food"] = validate_genre(fields["genre_of_food"])
    if "method_of_cooking" in fields:
        fields["method_of_cooking"] = validate_method(fields["method_of_cooking"])
    if "type_of_dish" in fields:
        fields["type_of_dish"] = validate_dish_types(fields["type_of_dish"]) or None
    return fields


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/scan", response_model=ScanResult)
async def scan_recipe(
    file: UploadFile = File(...),
    debug: bool = Form(False),
    user: Dict[str, str] = Depends(get_current_user),
    scanner: RecipeScanner = Depends(get_scanner),
):
    data = await file.read()
    return await scanner.scan(data, file.content_type, user["uid"], debug=debug, filename=file.filename)


@app.get("/recipes", response_model=List[StoredRecipe])
async def list_recipes(user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    return await store.alist_recipes(user["uid"])


@app.post("/recipes", response_model=StoredRecipe, status_code=201)
async def create_recipe(
    req: RecipeCreate,
    user: Dict[str, str] = Depends(get_current_user),
    store: RecipeStore = Depends(get_store),
):
    if not req.recipe_name.strip():
        raise HTTPException(status_code=400, detail="recipe_name is required")
    cleaned = RecipeCreate(**_clean_taxonomy(req.model_dump()))
    return await store.acreate_recipe(user["uid"], cleaned)


@app.get("/recipes/{recipe_id}", response_model=StoredRecipe)
async def get_recipe(recipe_id: str, user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    try:
        return await store.aget_recipe(user["uid"], recipe_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Recipe not found")


@app.put("/recipes/{recipe_id}", response_model=StoredRecipe)
async def update_recipe(
    recipe_id: str,
    req: RecipeUpdate,
    user: Dict[str, str] = Depends(get_current_user),
    store: RecipeStore = Depends(get_store),
):
    changes = _clean_taxonomy(req.model_dump(exclude_unset=True))
    try:
        return await store.aupdate_recipe(user["uid"], recipe_id, changes)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Recipe not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/recipes/{recipe_id}")
async def delete_recipe(recipe_id: str, user: Dict[str, str] = Depends(get_current_user), store: RecipeStore = Depends(get_store)):
    try:
        await store.adelete_recipe(user["uid"], recipe_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return {"success": True}
