"""Structured logging utilities for interview session events."""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from typing import Any

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_FILE_LOGS = os.getenv("ENABLE_FILE_LOGS", "1") in ("1", "true", "True")
LOG_FILE = os.getenv("LOG_FILE", "logs/interview.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "5242880"))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

_HUMAN_FORMAT = "[%(asctime)s] %(levelname)s %(name)s :: %(message)s"
_HUMAN_KEYS = ("status", "index", "in_flight", "time_left", "action", "outcome", "score", "ms")

_logger = logging.getLogger("interview")
_logger.setLevel(LOG_LEVEL)
_logger.propagate = False


def _ensure_handlers() -> None:
    if _logger.handlers:
        return

    # Console: human-readable lines only (stdout)
    console = logging.StreamHandler(stream=sys.stdout)
    console.setLevel(LOG_LEVEL)
    console.setFormatter(logging.Formatter(_HUMAN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    console.addFilter(lambda record: getattr(record, "is_json", False) is not True)
    _logger.addHandler(console)

    if not ENABLE_FILE_LOGS:
        return

    log_dir = os.path.dirname(LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    # JSON lines, file only
    json_file = logging.handlers.RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    json_file.setLevel(LOG_LEVEL)
    json_file.setFormatter(logging.Formatter("%(message)s"))
    json_file.addFilter(lambda record: getattr(record, "is_json", False) is True)
    _logger.addHandler(json_file)


def _format_human(evt: dict[str, Any]) -> str:
    base = f"session={evt.get('session_id')} kind={evt.get('kind')}"
    extras = [f"{key}={evt[key]}" for key in _HUMAN_KEYS if key in evt]
    if "error" in evt:
        extras.append(f"error={evt['error']!r}")
    return base + (" " + " ".join(extras) if extras else "")


def _emit(level: int, msg: str, is_json: bool) -> None:
    record = _logger.makeRecord(
        name=_logger.name,
        level=level,
        fn="",
        lno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.is_json = is_json  # type: ignore[attr-defined]
    _logger.handle(record)


def log_event(kind: str, session_id: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a human line to the console and a JSON line to the log file."""

    _ensure_handlers()

    payload: dict[str, Any] = {
        "ts": time.time(),
        "trace": str(uuid.uuid4()),
        "kind": kind,
        "session_id": session_id,
    }
    payload.update(fields)

    _emit(level, _format_human(payload), is_json=False)
    if ENABLE_FILE_LOGS:
        _emit(level, json.dumps(payload, ensure_ascii=False, default=str), is_json=True)


__all__ = ["log_event"]
