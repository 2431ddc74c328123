from __future__ import annotations  # Interview question batch generation

import json
import re
from pathlib import Path
from textwrap import dedent
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, Field

from candidate_management import QUESTION_COUNT, Difficulty, Question
from config import LlmRoute, load_app_registry
from llm_gateway import LlmGatewayError, call

REGISTRY_KEY = "question_source.generate_batch"

_DEFAULT_TEXTS = (
    "What is React and what are its main features?",
    "Explain the difference between state and props in React.",
    "How does React's virtual DOM work and why is it important?",
    "Explain middleware in Express.js and give an example of how to use it.",
    "How would you optimize the performance of a React application?",
    "Describe how you would design a RESTful API for a social media platform using Node.js.",
)

_NUMBERING = re.compile(r"^\s*(?:\d+[.)]|[-*•]|Q\d+[:.)]?)\s*", re.IGNORECASE)


class GenerationFailure(RuntimeError):  # Question batch could not be produced
    pass


class QuestionRequest(BaseModel):  # Batch request sent to the question source
    role: str
    difficulty: Optional[Difficulty] = None
    count: int = Field(default=QUESTION_COUNT, ge=1)


class GeneratedQuestion(BaseModel):  # Single question as returned by the LLM
    question_text: str = Field(min_length=1)
    difficulty: Optional[str] = None
    time_limit_seconds: Optional[int] = None


class QuestionBatch(BaseModel):  # Raw question list returned by the LLM
    questions: List[GeneratedQuestion]

    @classmethod
    def from_raw_content(cls, content: str) -> "QuestionBatch":
        """Accept loose JSON shapes, then fall back to one question per line."""
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            return cls(questions=_split_lines(content))
        if isinstance(data, dict):
            data = data.get("questions") or data.get("data") or []
        if not isinstance(data, list):
            raise ValueError("question payload is not a list")
        items = [_coerce_item(item) for item in data]
        return cls(questions=[item for item in items if item is not None])


class QuestionSource(Protocol):  # Collaborator contract used by the session
    async def generate_batch(self, request: QuestionRequest) -> List[Question]: ...


def band_for_index(index: int) -> Tuple[Difficulty, int]:
    """Difficulty and time limit (seconds) for a question position."""
    if index < 2:
        return "Easy", 20
    if index < 4:
        return "Medium", 60
    return "Hard", 120


def apply_bands(questions: Sequence[Question], count: int = QUESTION_COUNT) -> List[Question]:
    """Return a copy of a full batch with difficulty and time limit derived from position."""
    if len(questions) != count:
        raise GenerationFailure(f"expected {count} questions, got {len(questions)}")
    banded: List[Question] = []
    for index, question in enumerate(questions):
        difficulty, time_limit = band_for_index(index)
        banded.append(question.model_copy(update={"difficulty": difficulty, "time_limit": time_limit}))
    return banded


def default_questions() -> List[Question]:  # Static fallback set
    return apply_bands([Question(text=text, difficulty="Easy", time_limit=1) for text in _DEFAULT_TEXTS])


def normalize_batch(generated: Sequence[GeneratedQuestion], count: int = QUESTION_COUNT) -> List[Question]:
    """Keep the first ``count`` usable questions; fewer is a failure."""
    texts = [item.question_text.strip() for item in generated if item.question_text.strip()]
    if len(texts) < count:
        raise GenerationFailure(f"expected {count} questions, got {len(texts)}")
    return apply_bands([Question(text=text, difficulty="Easy", time_limit=1) for text in texts[:count]], count)


async def generate_batch(request: QuestionRequest, *, route: LlmRoute) -> List[Question]:  # Generate via LLM
    task = _build_task(request)
    try:
        batch = await call(task, QuestionBatch, cfg=route)
    except LlmGatewayError as exc:
        raise GenerationFailure(str(exc)) from exc
    return normalize_batch(batch.questions, request.count)


class LlmQuestionSource:  # QuestionSource bound to a configured route
    def __init__(self, route: LlmRoute) -> None:
        self._route = route

    async def generate_batch(self, request: QuestionRequest) -> List[Question]:
        return await generate_batch(request, route=self._route)


def source_from_config(config_path: Path) -> LlmQuestionSource:  # Convenience helper using app config
    registry = load_app_registry(config_path, {REGISTRY_KEY: QuestionBatch})
    route, _ = registry[REGISTRY_KEY]
    return LlmQuestionSource(route)


def _coerce_item(item: Any) -> Optional[GeneratedQuestion]:
    if isinstance(item, str):
        return GeneratedQuestion(question_text=item.strip()) if item.strip() else None
    if not isinstance(item, dict):
        return None
    text = item.get("question_text") or item.get("question") or item.get("text") or item.get("content") or ""
    if not str(text).strip():
        return None
    limit = item.get("time_limit_seconds") or item.get("timeLimit")
    return GeneratedQuestion(
        question_text=str(text).strip(),
        difficulty=item.get("difficulty"),
        time_limit_seconds=limit if isinstance(limit, int) else None,
    )


def _split_lines(content: str) -> List[GeneratedQuestion]:
    questions: List[GeneratedQuestion] = []
    for line in content.splitlines():
        text = _NUMBERING.sub("", line).strip()
        if text:
            questions.append(GeneratedQuestion(question_text=text))
    if not questions:
        raise ValueError("no questions found in free text")
    return questions


def _build_task(request: QuestionRequest) -> str:  # Compose batch generation prompt
    if request.difficulty:
        mix = f"All {request.count} questions must be {request.difficulty} difficulty."
    else:
        mix = "Order them by difficulty: 2 Easy, then 2 Medium, then 2 Hard."
    return dedent(
        f"""
        You are an expert technical interviewer.
        Generate {request.count} technical interview questions for a {request.role} position.
        {mix}

        Respond with a JSON object following this contract:
        - questions: array of exactly {request.count} items, each containing:
            - question_text: the question, one or two sentences.
            - difficulty: Easy, Medium or Hard.
            - time_limit_seconds: 20 for Easy, 60 for Medium, 120 for Hard.
        Return only JSON without markdown fences, text, or commentary.
        """
    ).strip()
