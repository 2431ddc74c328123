"""Pydantic schemas for the interview session API."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from candidate_management import CandidateSession, Question
from interview_session import Notice


class CreateCandidateReq(BaseModel):
    name: str = Field(min_length=1)


class DraftReq(BaseModel):
    text: str = ""


class SubmitReq(BaseModel):
    text: Optional[str] = None
    index: Optional[int] = Field(default=None, ge=0)


class SessionView(BaseModel):
    candidate: CandidateSession
    current_question: Optional[Question] = None
    draft: str = ""
    in_flight: str = "none"
    timer_running: bool = False
    notices: List[Notice] = Field(default_factory=list)


class TeardownResp(BaseModel):
    candidate_id: str
    torn_down: bool


class HealthResp(BaseModel):
    status: str = "ok"
    api_keys: Dict[str, bool] = Field(default_factory=dict)
