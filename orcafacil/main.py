# main.py
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

BASE_DIR = Path(__file__).resolve().parent
REPO_ROOT = BASE_DIR.parent

# Load .env before anything reads the environment
load_dotenv(REPO_ROOT / ".env")

from orcafacil.app import catalog_api, quotes_api  # noqa: E402
from orcafacil.app.services.quote_service import (  # noqa: E402
    QuoteServiceContext,
    ServiceError,
    build_context,
    learn_match,
    process_order,
    suggest_products,
)
from orcafacil.shared.normalize import default_synonyms, load_synonyms  # noqa: E402
from orcafacil.store import catalog_store, quote_store  # noqa: E402
from orcafacil.store.learned_store import SqlLearnedMatchStore  # noqa: E402


# ---------- Logging ----------
logger = logging.getLogger("orcafacil")
if not logger.handlers:
    logging.basicConfig(level=logging.INFO)

# ---------- ENV ----------
DEBUG = os.getenv("DEBUG", "0") == "1"
MODEL_PROVIDER = os.getenv("MODEL_PROVIDER", "openai").lower()
MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4o-mini")
OPENAI_API_KEY = (os.getenv("OPENAI_API_KEY") or "").strip() or None
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
SKIP_LLM_SETUP = os.getenv("SKIP_LLM_SETUP", "0") == "1"
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))
AI_CATALOG_MAX_CHARS = max(1000, int(os.getenv("AI_CATALOG_MAX_CHARS", "120000")))
MATCH_THRESHOLD = int(os.getenv("MATCH_THRESHOLD", "20"))
APPLY_BAR_CONVERSION = os.getenv("APPLY_BAR_CONVERSION", "1") == "1"
BAR_LENGTH_M = float(os.getenv("BAR_LENGTH_M", "3"))
SYNONYMS_PATH = (os.getenv("SYNONYMS_PATH") or "").strip() or None

logger.info(
    "Flags: MODEL_PROVIDER=%s MATCH_THRESHOLD=%d APPLY_BAR_CONVERSION=%s BAR_LENGTH_M=%.1f",
    MODEL_PROVIDER,
    MATCH_THRESHOLD,
    APPLY_BAR_CONVERSION,
    BAR_LENGTH_M,
)

_DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://test.local",
]
_origins_env = os.getenv("FRONTEND_ORIGINS", "")
ALLOWED_ORIGINS = (
    [origin.strip() for origin in _origins_env.split(",") if origin.strip()]
    if _origins_env.strip()
    else _DEFAULT_ALLOWED_ORIGINS
)

# ---------- LLM ----------
llm = None
if not SKIP_LLM_SETUP:
    from orcafacil.app.llm import create_chat_llm

    try:
        llm = create_chat_llm(
            provider=MODEL_PROVIDER,
            model=MODEL_NAME,
            temperature=0.0,
            top_p=0.8,
            api_key=OPENAI_API_KEY,
            base_url=OLLAMA_BASE_URL if MODEL_PROVIDER == "ollama" else None,
            timeout=AI_TIMEOUT_SECONDS,
        )
    except ValueError as exc:
        # Local matching keeps working; AI mode answers 503.
        logger.warning("AI classifier disabled: %s", exc)
        llm = None

SERVICE_CONTEXT: QuoteServiceContext | None = None
_DB_INITIALIZED = False


def _initialize_database() -> None:
    global _DB_INITIALIZED
    if _DB_INITIALIZED:
        return
    quote_store.init_db()
    _DB_INITIALIZED = True


def _synonyms() -> Dict[str, Any]:
    if SYNONYMS_PATH:
        return load_synonyms(SYNONYMS_PATH)
    return default_synonyms()


def get_service_context() -> QuoteServiceContext:
    global SERVICE_CONTEXT
    _initialize_database()
    if SERVICE_CONTEXT is None:
        SERVICE_CONTEXT = build_context(
            catalog_store.list_items(),
            logger=logger,
            learned_store_factory=SqlLearnedMatchStore,
            llm=llm,
            synonyms=_synonyms(),
            match_threshold=MATCH_THRESHOLD,
            bar_conversion=APPLY_BAR_CONVERSION,
            bar_length_m=BAR_LENGTH_M,
            ai_catalog_max_chars=AI_CATALOG_MAX_CHARS,
            debug=DEBUG,
        )
    return SERVICE_CONTEXT


def refresh_catalog_cache() -> Dict[str, Any]:
    """
    Reload the active catalog from the database into the service context.
    Called after every catalog admin operation (upsert/delete/upload).
    """
    _initialize_database()
    items = catalog_store.list_items()
    if SERVICE_CONTEXT is not None:
        SERVICE_CONTEXT.set_catalog(items)
    logger.info("Catalog cache refreshed: %d products loaded", len(items))
    return {"status": "success", "products_loaded": len(items)}


# ---------- FastAPI ----------


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    ctx = get_service_context()
    logger.info("Startup: %d catalog products, AI %s", len(ctx.catalog_items), "on" if llm else "off")
    logger.info("ALLOWED_ORIGINS=%s", ALLOWED_ORIGINS)
    yield


app = FastAPI(title="OrcaFacil Backend", lifespan=_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(catalog_api.router)
app.include_router(quotes_api.router)


@app.get("/")
def root():
    return {"ok": True, "service": "orcafacil-backend", "health": "/api/health", "docs": "/docs"}


@app.get("/api/health")
def api_health():
    ctx = get_service_context()
    return {
        "ok": True,
        "time": datetime.utcnow().isoformat(),
        "catalog_items": len(ctx.catalog_items),
        "ai_enabled": ctx.llm is not None,
    }


# ---- API: pedido -> itens do orçamento ----
@app.post("/api/quote/parse")
def api_quote_parse(payload: Dict[str, Any] = Body(...)):
    try:
        return process_order(payload=payload, ctx=get_service_context())
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@app.post("/api/quote/confirm")
def api_quote_confirm(payload: Dict[str, Any] = Body(...)):
    try:
        return learn_match(
            (payload.get("original_request") or "").strip(),
            str(payload.get("product_id") or ""),
            ctx=get_service_context(),
        )
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@app.get("/api/quote/suggest")
def api_quote_suggest(
    q: str = Query(..., min_length=2, description="Texto do item pendente"),
    limit: int = Query(3, ge=1, le=10),
):
    return {"query": q, "results": suggest_products(q, ctx=get_service_context(), limit=limit)}


# ---- API: associações aprendidas ----
@app.get("/api/learned")
def api_learned_list():
    store = get_service_context().learned_store
    return [match.to_dict() for match in store.entries()]


@app.delete("/api/learned")
def api_learned_delete(text: Optional[str] = Query(None)):
    """Forget one association (``?text=``) or all of them."""
    store = get_service_context().learned_store
    if text:
        if not store.forget(text):
            raise HTTPException(status_code=404, detail="Associação não encontrada")
        return {"deleted": 1}
    return {"deleted": catalog_store.clear_learned_matches()}


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("orcafacil.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
