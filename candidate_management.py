from __future__ import annotations  # Candidate session records and in-memory store

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from observability import log_event

logger = logging.getLogger(__name__)

QUESTION_COUNT = 6

Difficulty = Literal["Easy", "Medium", "Hard"]
InterviewStatus = Literal["not_started", "in_progress", "completed"]

# Fields that may no longer change once an interview is completed.
_FROZEN_ON_COMPLETION = ("questions", "answers", "score", "summary", "interview_status")
# Record fields that cannot be cleared with an explicit None.
_NON_NULLABLE = ("name", "questions", "answers", "current_question_index", "is_paused", "interview_status")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Question(BaseModel):  # Question assigned to a candidate
    id: str = Field(default_factory=lambda: uuid4().hex)
    text: str
    difficulty: Difficulty
    time_limit: int = Field(gt=0)


class Answer(BaseModel):  # Submitted answer with optional evaluation
    question_id: str
    text: str
    score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    feedback: Optional[str] = None
    timestamp: str = Field(default_factory=_utcnow)


class CandidateSession(BaseModel):  # Persisted interview record
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    questions: List[Question] = Field(default_factory=list)
    answers: List[Answer] = Field(default_factory=list)
    current_question_index: int = Field(default=0, ge=0)
    time_left: Optional[int] = Field(default=None, ge=0)
    is_paused: bool = False
    interview_status: InterviewStatus = "not_started"
    score: Optional[int] = Field(default=None, ge=0, le=100)
    summary: Optional[str] = None

    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None


class CandidateUpdate(BaseModel):  # Partial update; only explicitly set fields apply
    id: str
    name: Optional[str] = None
    questions: Optional[List[Question]] = None
    answers: Optional[List[Answer]] = None
    current_question_index: Optional[int] = Field(default=None, ge=0)
    time_left: Optional[int] = Field(default=None, ge=0)
    is_paused: Optional[bool] = None
    interview_status: Optional[InterviewStatus] = None
    score: Optional[int] = Field(default=None, ge=0, le=100)
    summary: Optional[str] = None

    @model_validator(mode="after")
    def _reject_cleared_required(self) -> "CandidateUpdate":
        cleared = [key for key in _NON_NULLABLE if key in self.model_fields_set and getattr(self, key) is None]
        if cleared:
            raise ValueError(f"fields cannot be cleared: {', '.join(cleared)}")
        return self


class CandidateStore:  # Keyed in-memory collection of candidate sessions
    def __init__(self) -> None:
        self._lock = Lock()
        self._records: Dict[str, CandidateSession] = {}

    def create(self, session: CandidateSession) -> CandidateSession:
        with self._lock:
            if session.id in self._records:
                raise ValueError(f"Candidate {session.id} already exists")
            self._records[session.id] = session.model_copy(deep=True)
        log_event("candidate_created", session.id, status=session.interview_status)
        return session.model_copy(deep=True)

    def create_candidate(self, name: str) -> CandidateSession:
        return self.create(CandidateSession(name=name))

    def get(self, candidate_id: str) -> Optional[CandidateSession]:
        with self._lock:
            record = self._records.get(candidate_id)
            return record.model_copy(deep=True) if record else None

    def list_candidates(self) -> List[CandidateSession]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._records.values()]

    def merge(self, update: Union[CandidateUpdate, Dict[str, Any]]) -> Optional[CandidateSession]:
        """Apply only the fields present in ``update``.

        Unknown ids are ignored and return ``None``.
        """
        if isinstance(update, dict):
            update = CandidateUpdate.model_validate(update)
        changes = update.model_dump(exclude_unset=True)
        candidate_id = changes.pop("id")
        with self._lock:
            current = self._records.get(candidate_id)
            if current is None:
                logger.debug("merge ignored for unknown candidate %s", candidate_id)
                return None
            if current.interview_status == "completed":
                dropped = [key for key in _FROZEN_ON_COMPLETION if key in changes]
                for key in dropped:
                    changes.pop(key)
                if dropped:
                    logger.warning("ignored update of %s on completed candidate %s", dropped, candidate_id)
            merged = CandidateSession.model_validate({**current.model_dump(), **changes})
            self._records[candidate_id] = merged
            return merged.model_copy(deep=True)

    def reset(self, candidate_id: str) -> Optional[CandidateSession]:
        with self._lock:
            current = self._records.get(candidate_id)
            if current is None:
                return None
            cleared = CandidateSession(id=current.id, name=current.name, time_left=None)
            self._records[candidate_id] = cleared
        log_event("candidate_reset", candidate_id, status=cleared.interview_status)
        return cleared.model_copy(deep=True)

    def delete(self, candidate_id: str) -> bool:
        with self._lock:
            return self._records.pop(candidate_id, None) is not None


__all__ = [
    "QUESTION_COUNT",
    "Answer",
    "CandidateSession",
    "CandidateStore",
    "CandidateUpdate",
    "Difficulty",
    "InterviewStatus",
    "Question",
]
