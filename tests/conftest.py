import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("ENABLE_FILE_LOGS", "0")

from candidate_management import CandidateStore, Question
from config.settings import settings
from interview_session import InterviewSession
from question_source import QuestionRequest, default_questions
from scoring_service import Evaluation, EvaluationRequest, SummaryRequest


class FakeQuestionSource:
    def __init__(self, questions: Optional[List[Question]] = None, error: Optional[Exception] = None, hang: bool = False):
        self.questions = questions if questions is not None else default_questions()
        self.error = error
        self.hang = hang
        self.gate: Optional[asyncio.Event] = None
        self.requests: List[QuestionRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def generate_batch(self, request: QuestionRequest) -> List[Question]:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return [question.model_copy() for question in self.questions]


class FakeScoringService:
    def __init__(self, scores: Optional[List[float]] = None, summary: str = "Solid fundamentals."):
        self.scores = list(scores or [])
        self.summary = summary
        self.evaluate_error: Optional[Exception] = None
        self.summary_error: Optional[Exception] = None
        self.hang_evaluate = False
        self.hang_summary = False
        self.evaluate_gate: Optional[asyncio.Event] = None
        self.summary_gate: Optional[asyncio.Event] = None
        self.evaluate_calls: List[EvaluationRequest] = []
        self.summary_calls: List[SummaryRequest] = []

    async def evaluate(self, request: EvaluationRequest) -> Evaluation:
        self.evaluate_calls.append(request)
        if self.evaluate_gate is not None:
            await self.evaluate_gate.wait()
        if self.hang_evaluate:
            await asyncio.Event().wait()
        if self.evaluate_error is not None:
            raise self.evaluate_error
        score = self.scores.pop(0) if self.scores else 5
        return Evaluation(score=score, feedback=f"Scored {score}.")

    async def summarize(self, request: SummaryRequest) -> str:
        self.summary_calls.append(request)
        if self.summary_gate is not None:
            await self.summary_gate.wait()
        if self.hang_summary:
            await asyncio.Event().wait()
        if self.summary_error is not None:
            raise self.summary_error
        return self.summary


@pytest.fixture(autouse=True)
def slow_clock(monkeypatch):
    # Background ticks stay asleep unless a test speeds them up.
    monkeypatch.setattr(settings, "TICK_SECONDS", 3600.0)


@pytest.fixture
def store() -> CandidateStore:
    return CandidateStore()


@pytest.fixture
def fake_source() -> FakeQuestionSource:
    return FakeQuestionSource()


@pytest.fixture
def fake_scoring() -> FakeScoringService:
    return FakeScoringService()


@pytest.fixture
def make_session(store, fake_source, fake_scoring):
    def _make(name: str = "Alice", source=None, scoring=None) -> InterviewSession:
        record = store.create_candidate(name)
        return InterviewSession(record.id, store, source or fake_source, scoring or fake_scoring)

    return _make
