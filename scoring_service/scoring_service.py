from __future__ import annotations

import re
from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field, field_validator

from candidate_management import Answer, Question
from config import LlmRoute, load_app_registry
from llm_gateway import LlmGatewayError, call, chat_text

EVALUATE_KEY = "scoring_service.evaluate_answer"
SUMMARY_KEY = "scoring_service.generate_summary"

_SCORE_PATTERN = re.compile(r"score\D*?(\d+(?:\.\d+)?)", re.IGNORECASE)
_FEEDBACK_PATTERN = re.compile(r"feedback[:\s]*([^.]+\.)", re.IGNORECASE)


class EvaluationFailure(RuntimeError):  # Per-answer scoring failed
    pass


class SummaryFailure(RuntimeError):  # Narrative summary could not be produced
    pass


class EvaluationRequest(BaseModel):  # Answer to be scored
    question_text: str
    answer_text: str
    context: Dict[str, Any] = Field(default_factory=dict)


class Evaluation(BaseModel):  # Score and feedback for one answer
    score: float
    feedback: str = "No feedback provided."

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("score must be numeric") from exc
        return max(0.0, min(10.0, number))

    @field_validator("feedback", mode="before")
    @classmethod
    def _default_feedback(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or "No feedback provided."

    @classmethod
    def from_raw_content(cls, content: str) -> "Evaluation":
        """Pull a score and feedback sentence out of free text."""
        score_match = _SCORE_PATTERN.search(content)
        if not score_match:
            raise ValueError("no score found in free text")
        feedback_match = _FEEDBACK_PATTERN.search(content)
        feedback = feedback_match.group(1).strip() if feedback_match else "Default feedback based on score."
        return cls(score=score_match.group(1), feedback=feedback)


class SummaryRequest(BaseModel):  # Completed interview to summarize
    candidate_context: Dict[str, Any] = Field(default_factory=dict)
    questions: List[Question]
    answers: List[Answer]
    overall_score: int


class ScoringService(Protocol):  # Collaborator contract used by the session
    async def evaluate(self, request: EvaluationRequest) -> Evaluation: ...

    async def summarize(self, request: SummaryRequest) -> str: ...


async def evaluate_answer(request: EvaluationRequest, *, route: LlmRoute) -> Evaluation:  # Call LLM evaluator
    task = _build_evaluation_task(request)
    try:
        return await call(task, Evaluation, cfg=route, options={"temperature": 0.7, "max_tokens": 500})
    except LlmGatewayError as exc:
        raise EvaluationFailure(str(exc)) from exc


async def generate_summary(request: SummaryRequest, *, route: LlmRoute) -> str:  # Call LLM summarizer
    messages = [
        {
            "role": "system",
            "content": "You are an expert technical interviewer providing candidate evaluations. Provide a comprehensive summary.",
        },
        {"role": "user", "content": _build_summary_task(request)},
    ]
    try:
        text = await chat_text(messages, cfg=route, options={"temperature": 0.7, "max_tokens": 1000})
    except LlmGatewayError as exc:
        raise SummaryFailure(str(exc)) from exc
    if not text.strip():
        raise SummaryFailure("LLM returned an empty summary")
    return text.strip()


class LlmScoringService:  # ScoringService bound to configured routes
    def __init__(self, evaluate_route: LlmRoute, summary_route: LlmRoute) -> None:
        self._evaluate_route = evaluate_route
        self._summary_route = summary_route

    async def evaluate(self, request: EvaluationRequest) -> Evaluation:
        return await evaluate_answer(request, route=self._evaluate_route)

    async def summarize(self, request: SummaryRequest) -> str:
        return await generate_summary(request, route=self._summary_route)


def service_from_config(config_path: Path) -> LlmScoringService:  # Convenience helper using app config
    registry = load_app_registry(config_path, {EVALUATE_KEY: Evaluation, SUMMARY_KEY: None})
    evaluate_route, _ = registry[EVALUATE_KEY]
    summary_route, _ = registry[SUMMARY_KEY]
    return LlmScoringService(evaluate_route, summary_route)


_EVALUATION_TEMPLATE = dedent(
    """
    You are an expert technical interviewer evaluating a candidate response for a {role} position.
    Question difficulty: {difficulty}

    Question: {question}

    Candidate's answer:
    {answer}

    Score the answer from 0 to 10 based on technical accuracy, completeness, and clarity.
    Respond with a JSON object following this contract:
    - score: number between 0 and 10.
    - feedback: two or three sentences of constructive feedback.
    Return only JSON without markdown fences, text, or commentary.
    """
).strip()


def _build_evaluation_task(request: EvaluationRequest) -> str:  # Compose evaluation prompt
    # Answers may span lines, so they are filled in after dedenting.
    return _EVALUATION_TEMPLATE.format(
        role=request.context.get("role", "software engineering"),
        difficulty=request.context.get("difficulty", "unspecified"),
        question=request.question_text,
        answer=request.answer_text,
    )


def _format_exchange(position: int, question: Optional[Question], answer: Answer) -> str:
    question_text = question.text if question else "Unknown question"
    score = f"{answer.score:g}" if answer.score is not None else "N/A"
    return "\n".join(
        [
            f"Question {position}: {question_text}",
            f"Answer: {answer.text or 'No answer provided'}",
            f"Score: {score}/10",
            f"Feedback: {answer.feedback or 'No feedback'}",
        ]
    )


def _build_summary_task(request: SummaryRequest) -> str:  # Compose summary prompt
    name = request.candidate_context.get("name") or "Unknown candidate"
    role = request.candidate_context.get("role", "software engineering")
    exchanges = "\n\n".join(
        _format_exchange(index + 1, request.questions[index] if index < len(request.questions) else None, answer)
        for index, answer in enumerate(request.answers)
    )
    return (
        f"Generate a comprehensive summary evaluation for a {role} candidate based on their interview performance.\n\n"
        f"Candidate: {name}\n"
        f"Position: {role}\n"
        f"Overall Score: {request.overall_score}/100\n\n"
        f"Interview Questions and Answers:\n{exchanges}\n\n"
        "Provide a detailed evaluation summary (200-300 words) covering technical skills, "
        "strengths, weaknesses, and hiring recommendation."
    )
