from __future__ import annotations  # Configuration schema for LLM routing

from pathlib import Path
from typing import Dict, List, Tuple, Type

from pydantic import BaseModel, Field


class LlmRoute(BaseModel):  # LLM endpoint configuration
    name: str
    base_url: str
    endpoint: str
    model: str
    fallback_models: List[str] = Field(default_factory=list)
    timeout_s: float = Field(ge=0.1)
    max_retries: int = Field(default=2, ge=0)
    api_key_env: str | None = None
    api_key_prefix: str | None = None
    response_format: str | None = None
    extra_headers: Dict[str, str] = Field(default_factory=dict)
    sequential: bool = False
    enforce_json: bool = True

    def models(self) -> List[str]:  # Primary model followed by fallbacks
        ordered = [self.model]
        ordered.extend(model for model in self.fallback_models if model not in ordered)
        return ordered


class AppConfig(BaseModel):  # Application configuration root
    llm_routes: Dict[str, LlmRoute]
    registry: Dict[str, str]


def load_config(path: Path) -> AppConfig:  # Load configuration from disk
    data = path.read_text(encoding="utf-8")
    return AppConfig.model_validate_json(data)


def resolve_registry(cfg: AppConfig, schemas: Dict[str, Type[BaseModel] | None]) -> Dict[str, Tuple[LlmRoute, Type[BaseModel] | None]]:  # Build registry with schemas
    resolved: Dict[str, Tuple[LlmRoute, Type[BaseModel] | None]] = {}
    for target, schema in schemas.items():
        if target not in cfg.registry:
            raise KeyError(f"Registry entry missing for '{target}'")
        route_id = cfg.registry[target]
        if route_id not in cfg.llm_routes:
            raise KeyError(f"Route '{route_id}' missing for '{target}'")
        if schema is not None and not issubclass(schema, BaseModel):
            raise TypeError(f"Schema for '{target}' must be BaseModel")
        resolved[target] = (cfg.llm_routes[route_id], schema)
    return resolved


def load_app_registry(path: Path, schemas: Dict[str, Type[BaseModel] | None]) -> Dict[str, Tuple[LlmRoute, Type[BaseModel] | None]]:  # Load config and build registry
    cfg = load_config(path)
    return resolve_registry(cfg, schemas)
