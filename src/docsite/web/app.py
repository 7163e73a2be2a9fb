"""FastAPI application serving search and navigation of a built site."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from docsite.build.orchestrator import SITE_FILE
from docsite.config import SiteConfig
from docsite.index.search import SEARCH_MODES, Searcher
from docsite.index.storage import SQLiteIndexStore

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="docsite", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_settings: Dict[str, Path | None] = {"out_dir": None, "db_path": None}


class SearchPayload(BaseModel):
    query: str
    db: Path | None = None
    limit: int = 10
    mode: str | None = None


def configure(*, out_dir: Path | None = None, db_path: Path | None = None) -> None:
    """Point the app at a built site directory and its search database."""
    _settings["out_dir"] = Path(out_dir) if out_dir is not None else None
    _settings["db_path"] = Path(db_path) if db_path is not None else None


def _site_config() -> SiteConfig:
    out_dir = _settings["out_dir"]
    return SiteConfig(out_dir=out_dir) if out_dir is not None else SiteConfig()


def _resolve_db_path(db: Path | None) -> Path:
    if db is None:
        db = _settings["db_path"]
    config = _site_config()
    config.db_path = db
    return config.resolve_db_path(Path.cwd())


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, List[Dict[str, Any]]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    if payload.mode is not None and payload.mode not in SEARCH_MODES:
        raise HTTPException(status_code=400, detail=f"Unknown search mode: {payload.mode}")

    limit = max(1, min(payload.limit, 50))

    resolved_db = _resolve_db_path(payload.db)
    if not resolved_db.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Database not found at {resolved_db}. Run 'docsite build' first.",
        )

    store = SQLiteIndexStore(resolved_db)
    try:
        index = store.load()
    finally:
        store.close()
    searcher = Searcher(index, mode=payload.mode or "and")
    results = searcher.search(query, limit=limit)
    return {"results": [result.to_dict() for result in results]}


@app.get("/documents")
async def list_documents(db: Path | None = None) -> dict[str, Any]:
    """List all indexed documents in the database."""
    resolved_db = _resolve_db_path(db)
    if not resolved_db.exists():
        return {"documents": [], "stats": {"document_count": 0, "token_count": 0, "posting_count": 0}}

    store = SQLiteIndexStore(resolved_db)
    try:
        documents = store.list_documents()
        stats = store.get_stats()
    finally:
        store.close()

    return {"documents": documents, "stats": stats}


@app.get("/navigation")
async def get_navigation() -> dict[str, Any]:
    """Return the navigation tree of the last emitted site."""
    site_file = _site_config().out_dir / SITE_FILE
    if not site_file.exists():
        raise HTTPException(status_code=404, detail=f"No built site at {site_file}")
    try:
        site = json.loads(site_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.error("Unable to read %s: %s", site_file, exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"navigation": site.get("navigation"), "documents": site.get("documents", {})}
