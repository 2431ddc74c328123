"""Configuration package for interview simulation services."""
from .registry import QUESTION_SOURCE_KEY, SCORING_SERVICE_KEY, bind_model, get_model, is_bound
from .routes import AppConfig, LlmRoute, load_app_registry, load_config, resolve_registry
from .settings import Settings, settings

__all__ = [
    "AppConfig",
    "LlmRoute",
    "load_app_registry",
    "load_config",
    "resolve_registry",
    "QUESTION_SOURCE_KEY",
    "SCORING_SERVICE_KEY",
    "bind_model",
    "get_model",
    "is_bound",
    "Settings",
    "settings",
]
