"""Span helper for timing collaborator calls."""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from .logger import log_event


@contextmanager
def span(session_id: str, name: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """Time the wrapped block and emit a ``span`` event.

    The yielded dict can be filled with an ``outcome`` by the caller.
    """
    start = time.monotonic()
    details: Dict[str, Any] = dict(fields)
    try:
        yield details
    finally:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        log_event("span", session_id, action=name, ms=elapsed_ms, **details)


__all__ = ["span"]
