from __future__ import annotations  # FastAPI server exposing the interview session API

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api.routes import peek_manager, router, set_manager
from api.schemas import HealthResp
from config import QUESTION_SOURCE_KEY, SCORING_SERVICE_KEY, AppConfig, bind_model, is_bound, load_config, settings
from llm_gateway import api_key_available, check_connection
from question_source import source_from_config
from scoring_service import service_from_config


logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent


def config_path() -> Path:
    path = Path(settings.CONFIG_PATH)
    return path if path.is_absolute() else ROOT / path


def bind_llm_collaborators(path: Path) -> None:
    """Bind LLM-backed collaborators unless something is already bound."""

    if not is_bound(QUESTION_SOURCE_KEY):
        bind_model(QUESTION_SOURCE_KEY, source_from_config(path))
    if not is_bound(SCORING_SERVICE_KEY):
        bind_model(SCORING_SERVICE_KEY, service_from_config(path))


def _load_routes() -> AppConfig:
    path = config_path()
    if not path.exists():
        raise HTTPException(status_code=503, detail=f"routing config not found: {path.name}")
    return load_config(path)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    path = config_path()
    if path.exists():
        bind_llm_collaborators(path)
    else:
        logger.warning("LLM routing config %s not found; collaborators must be bound manually", path)
    try:
        yield
    finally:
        manager = peek_manager()
        if manager is not None:
            manager.close()
        set_manager(None)


app = FastAPI(title="Interview Simulation API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"]
)
app.include_router(router)


@app.get("/api/health", response_model=HealthResp)
async def health() -> HealthResp:
    cfg = _load_routes()
    return HealthResp(api_keys={name: api_key_available(route) for name, route in cfg.llm_routes.items()})


@app.post("/api/health/llm/{route_name}")
async def probe_route(route_name: str) -> Dict[str, Any]:
    cfg = _load_routes()
    route = cfg.llm_routes.get(route_name)
    if route is None:
        raise HTTPException(status_code=404, detail="route not found")
    return await check_connection(route)
