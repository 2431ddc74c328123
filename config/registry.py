"""In-memory registry for interview collaborators."""
from typing import Any, Dict

_REGISTRY: Dict[str, Any] = {}


def bind_model(key: str, impl: Any) -> None:
    """Bind an implementation to a registry key."""
    _REGISTRY[key] = impl


def get_model(key: str) -> Any:
    """Retrieve an implementation from the registry.

    Raises:
        KeyError: If nothing has been bound for ``key``.
    """

    if key not in _REGISTRY:
        raise KeyError(f"Model not bound in registry: {key}")
    return _REGISTRY[key]


def is_bound(key: str) -> bool:
    return key in _REGISTRY


QUESTION_SOURCE_KEY = "models.question_source"
SCORING_SERVICE_KEY = "models.scoring_service"
