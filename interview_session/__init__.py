from __future__ import annotations  # Re-export interview_session public API

from .interview_session import (  # noqa: F401
    CorruptIndexState,
    GenerationTimeout,
    InFlight,
    InterviewSession,
    Notice,
)

__all__ = [
    "CorruptIndexState",
    "GenerationTimeout",
    "InFlight",
    "InterviewSession",
    "Notice",
]
