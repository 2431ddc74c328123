from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from candidate_management import (
    QUESTION_COUNT,
    Answer,
    CandidateSession,
    CandidateStore,
    CandidateUpdate,
    Question,
)
from config.settings import settings
from observability import log_event, span
from question_source import GenerationFailure, QuestionRequest, QuestionSource, apply_bands, default_questions
from scoring_service import Evaluation, EvaluationRequest, ScoringService, SummaryRequest
from services.scoring import final_score

logger = logging.getLogger(__name__)


class InFlight(str, Enum):  # Side-effecting operation currently outstanding
    NONE = "none"
    GENERATING = "generating"
    EVALUATING = "evaluating"
    FINISHING = "finishing"


class GenerationTimeout(GenerationFailure):  # Question batch did not arrive in time
    pass


class CorruptIndexState(RuntimeError):  # Stored index disagrees with questions/answers
    pass


class Notice(BaseModel):  # User-visible message about a recovered failure
    kind: str
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class InterviewSession:
    """Drives one candidate through generation, six timed answers and final scoring.

    The store is the source of truth: every decision re-reads the persisted
    record, and every change is written back with ``merge``. Collaborator calls
    are the only suspension points; each is single-flight (``in_flight``) and
    bounded by a timeout, and each result is re-validated against the latest
    record before it is merged.
    """

    def __init__(
        self,
        candidate_id: str,
        store: CandidateStore,
        question_source: QuestionSource,
        scoring: ScoringService,
        *,
        role: Optional[str] = None,
    ) -> None:
        self.candidate_id = candidate_id
        self.role = role or settings.INTERVIEW_ROLE
        self.draft = ""
        self.notices: List[Notice] = []
        self._store = store
        self._source = question_source
        self._scoring = scoring
        self._in_flight = InFlight.NONE
        self._epoch = 0
        self._timer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def in_flight(self) -> InFlight:
        return self._in_flight

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------

    async def observe(self) -> Optional[CandidateSession]:
        """Read the session and advance whatever the current state requires."""
        record = self._store.get(self.candidate_id)
        if record is None:
            self.stop_timer()
            return None
        if record.interview_status == "completed":
            self.stop_timer()
            return record
        if not record.questions:
            return await self._generate(record)

        try:
            self._check_index(record)
        except CorruptIndexState as exc:
            record = self._heal_index(record, exc)

        if record.current_question_index >= len(record.questions):
            record = await self._finish(record)
        else:
            record = self._heal_time_left(record)
        self._sync_timer(record)
        return record

    async def submit_answer(self, text: Optional[str] = None, *, index: Optional[int] = None) -> Optional[CandidateSession]:
        record = self._store.get(self.candidate_id)
        if record is None:
            return None
        if self._in_flight is not InFlight.NONE:
            log_event("submit_rejected", self.candidate_id, index=index, in_flight=self._in_flight.value)
            return record
        self.stop_timer()
        updated = await self._submit(index, text)
        if updated is not None and self._ready_to_finish(updated):
            updated = await self._finish(updated)
        if updated is not None:
            self._sync_timer(updated)
        return updated

    async def toggle_pause(self) -> Optional[CandidateSession]:
        record = self._store.get(self.candidate_id)
        if record is None:
            return None
        if record.interview_status != "in_progress" or record.current_question_index >= len(record.questions):
            return record
        updated = self._store.merge(CandidateUpdate(id=self.candidate_id, is_paused=not record.is_paused))
        if updated is None:
            return None
        log_event(
            "pause_toggled",
            self.candidate_id,
            action="pause" if updated.is_paused else "resume",
            time_left=updated.time_left,
        )
        self._sync_timer(updated)
        return updated

    def edit_answer(self, text: str) -> str:
        self.draft = text
        return self.draft

    def reset(self) -> Optional[CandidateSession]:
        """Return the candidate to ``not_started``; late collaborator results are dropped."""
        self._epoch += 1
        self.stop_timer()
        self.draft = ""
        self.notices.clear()
        return self._store.reset(self.candidate_id)

    def close(self) -> None:
        self._closed = True
        self.stop_timer()

    def reopen(self) -> None:
        """Undo ``close`` for a controller whose collaborator call is still outstanding."""
        self._closed = False

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    async def tick(self) -> bool:
        """Advance the countdown by one second; return whether ticking should continue."""
        record = self._store.get(self.candidate_id)
        if record is None or not self._timer_should_run(record):
            return False
        question = record.questions[record.current_question_index]
        time_left = question.time_limit if record.time_left is None else record.time_left
        remaining = max(0, time_left - 1)
        self._store.merge(CandidateUpdate(id=self.candidate_id, time_left=remaining))
        if remaining > 0:
            return True

        log_event("timer_expired", self.candidate_id, index=record.current_question_index)
        updated = await self._submit(record.current_question_index, None)
        if updated is not None and self._ready_to_finish(updated):
            updated = await self._finish(updated)
        return updated is not None and self._timer_should_run(updated)

    def stop_timer(self) -> None:
        task = self._timer
        self._timer = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _sync_timer(self, record: CandidateSession) -> None:
        # The operation in flight owns the timer until it completes.
        if self._in_flight is not InFlight.NONE:
            return
        if not self._timer_should_run(record):
            self.stop_timer()
            return
        if not self.timer_running:
            self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    async def _run_timer(self) -> None:
        try:
            while True:
                await asyncio.sleep(settings.TICK_SECONDS)
                if not await self.tick():
                    break
        finally:
            if self._timer is _current_task():
                self._timer = None

    def _timer_should_run(self, record: CandidateSession) -> bool:
        return (
            not self._closed
            and self._in_flight is InFlight.NONE
            and record.interview_status == "in_progress"
            and not record.is_paused
            and record.current_question_index < len(record.questions)
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _generate(self, record: CandidateSession) -> CandidateSession:
        if self._in_flight is not InFlight.NONE or record.questions:
            return record
        self._in_flight = InFlight.GENERATING
        epoch = self._epoch
        log_event("generation_started", self.candidate_id, in_flight=self._in_flight.value)
        try:
            questions = await self._request_questions()
        finally:
            self._in_flight = InFlight.NONE

        latest = self._store.get(self.candidate_id)
        if epoch != self._epoch or latest is None or latest.questions:
            log_event("generation_dropped", self.candidate_id, outcome="stale")
            return latest if latest is not None else record
        updated = self._store.merge(
            CandidateUpdate(
                id=self.candidate_id,
                questions=questions,
                current_question_index=0,
                time_left=questions[0].time_limit,
                is_paused=False,
                interview_status="in_progress",
            )
        )
        if updated is None:
            return latest
        log_event("generation_done", self.candidate_id, status=updated.interview_status, time_left=updated.time_left)
        self._sync_timer(updated)
        return updated

    async def _request_questions(self) -> List[Question]:
        timeout = settings.GENERATION_TIMEOUT_S
        request = QuestionRequest(role=self.role, count=QUESTION_COUNT)
        with span(self.candidate_id, "generate_questions") as details:
            try:
                generated = await asyncio.wait_for(self._source.generate_batch(request), timeout=timeout)
                questions = apply_bands(generated)
            except asyncio.TimeoutError:
                details["outcome"] = "timeout"
                self._notify(
                    "generation_timeout",
                    "Question generation timed out. Using the default question set.",
                    GenerationTimeout(f"no question batch after {timeout}s"),
                )
                return default_questions()
            except Exception as exc:  # noqa: BLE001
                details["outcome"] = "fallback"
                self._notify("generation_failure", "Failed to generate questions batch. Using default set.", exc)
                return default_questions()
            details["outcome"] = "ok"
            return questions

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def _accepts_submission(self, record: CandidateSession, index: int) -> bool:
        return (
            self._in_flight is InFlight.NONE
            and record.interview_status == "in_progress"
            and 0 <= index < len(record.questions)
            and index == record.current_question_index
            and len(record.answers) == index
        )

    async def _submit(self, index: Optional[int], text: Optional[str]) -> Optional[CandidateSession]:
        record = self._store.get(self.candidate_id)
        if record is None:
            return None
        if index is None:
            index = record.current_question_index
        if not self._accepts_submission(record, index):
            log_event("submit_rejected", self.candidate_id, index=index, in_flight=self._in_flight.value)
            return record

        question = record.questions[index]
        answer_text = (self.draft if text is None else text).strip() or settings.NO_ANSWER_TEXT
        epoch = self._epoch
        self._in_flight = InFlight.EVALUATING
        try:
            evaluation = await self._evaluate(question, answer_text, index)
        finally:
            self._in_flight = InFlight.NONE

        latest = self._store.get(self.candidate_id)
        if epoch != self._epoch or latest is None or not self._accepts_submission(latest, index):
            log_event("evaluation_dropped", self.candidate_id, index=index, outcome="stale")
            return latest

        answer = Answer(
            question_id=question.id,
            text=answer_text,
            score=evaluation.score if evaluation else None,
            feedback=evaluation.feedback if evaluation else None,
        )
        next_index = index + 1
        next_question = latest.questions[next_index] if next_index < len(latest.questions) else None
        self.draft = ""
        updated = self._store.merge(
            CandidateUpdate(
                id=self.candidate_id,
                answers=[*latest.answers, answer],
                current_question_index=next_index,
                time_left=next_question.time_limit if next_question else 0,
                is_paused=False,
            )
        )
        log_event(
            "answer_recorded",
            self.candidate_id,
            index=index,
            score=answer.score,
            outcome="scored" if evaluation else "unscored",
        )
        return updated

    async def _evaluate(self, question: Question, answer_text: str, index: int) -> Optional[Evaluation]:
        request = EvaluationRequest(
            question_text=question.text,
            answer_text=answer_text,
            context={"role": self.role, "difficulty": question.difficulty},
        )
        with span(self.candidate_id, "evaluate_answer", index=index) as details:
            try:
                evaluation = await asyncio.wait_for(
                    self._scoring.evaluate(request),
                    timeout=settings.EVALUATION_TIMEOUT_S,
                )
            except asyncio.TimeoutError as exc:
                details["outcome"] = "timeout"
                self._notify("evaluation_failure", "Answer evaluation timed out. Skipping score for this question.", exc)
                return None
            except Exception as exc:  # noqa: BLE001
                details["outcome"] = "failed"
                self._notify("evaluation_failure", "Answer evaluation failed. Skipping score for this question.", exc)
                return None
            details["outcome"] = "ok"
            return evaluation

    # ------------------------------------------------------------------
    # Finishing
    # ------------------------------------------------------------------

    def _ready_to_finish(self, record: CandidateSession) -> bool:
        count = len(record.questions)
        return (
            self._in_flight is InFlight.NONE
            and record.interview_status == "in_progress"
            and count == QUESTION_COUNT
            and len(record.answers) == count
            and record.current_question_index == count
            and record.score is None
        )

    async def _finish(self, record: CandidateSession) -> CandidateSession:
        if not self._ready_to_finish(record):
            return record
        self._in_flight = InFlight.FINISHING
        epoch = self._epoch
        score = final_score(record.answers)
        log_event("finishing_started", self.candidate_id, in_flight=self._in_flight.value, score=score)
        try:
            summary = await self._summarize(record, score)
        finally:
            self._in_flight = InFlight.NONE

        latest = self._store.get(self.candidate_id)
        if epoch != self._epoch or latest is None or not self._ready_to_finish(latest):
            log_event("finishing_dropped", self.candidate_id, outcome="stale")
            return latest if latest is not None else record
        if summary is None:
            summary = latest.summary or ""
        updated = self._store.merge(
            CandidateUpdate(
                id=self.candidate_id,
                interview_status="completed",
                score=score,
                summary=summary,
                time_left=0,
                is_paused=False,
            )
        )
        if updated is None:
            return latest
        self.stop_timer()
        log_event("interview_completed", self.candidate_id, status=updated.interview_status, score=updated.score)
        return updated

    async def _summarize(self, record: CandidateSession, score: int) -> Optional[str]:
        request = SummaryRequest(
            candidate_context={"name": record.name, "role": self.role},
            questions=record.questions,
            answers=record.answers,
            overall_score=score,
        )
        with span(self.candidate_id, "generate_summary") as details:
            try:
                summary = await asyncio.wait_for(
                    self._scoring.summarize(request),
                    timeout=settings.SUMMARY_TIMEOUT_S,
                )
            except asyncio.TimeoutError as exc:
                details["outcome"] = "timeout"
                self._notify("summary_failure", "Summary generation timed out. Final score recorded without a summary.", exc)
                return None
            except Exception as exc:  # noqa: BLE001
                details["outcome"] = "failed"
                self._notify("summary_failure", "Failed to generate the candidate summary. Final score recorded.", exc)
                return None
            details["outcome"] = "ok"
            return summary

    # ------------------------------------------------------------------
    # Self-healing
    # ------------------------------------------------------------------

    def _check_index(self, record: CandidateSession) -> None:
        expected = min(len(record.answers), len(record.questions))
        if record.current_question_index != expected:
            raise CorruptIndexState(
                f"index {record.current_question_index} with {len(record.questions)} questions "
                f"and {len(record.answers)} answers"
            )

    def _heal_index(self, record: CandidateSession, exc: CorruptIndexState) -> CandidateSession:
        healed = min(len(record.answers), len(record.questions))
        log_event("index_healed", self.candidate_id, level=logging.WARNING, index=healed, error=str(exc))
        question = record.questions[healed] if healed < len(record.questions) else None
        changes = {"id": self.candidate_id, "current_question_index": healed}
        if question is not None and (record.time_left is None or record.time_left > question.time_limit):
            changes["time_left"] = question.time_limit
        return self._store.merge(changes) or record

    def _heal_time_left(self, record: CandidateSession) -> CandidateSession:
        question = record.current_question()
        if question is None:
            return record
        if record.time_left is not None and record.time_left <= question.time_limit:
            return record
        return self._store.merge(CandidateUpdate(id=self.candidate_id, time_left=question.time_limit)) or record

    def _notify(self, kind: str, message: str, error: Optional[BaseException] = None) -> None:
        self.notices.append(Notice(kind=kind, message=message))
        log_event(
            "notice",
            self.candidate_id,
            level=logging.WARNING,
            action=kind,
            error=repr(error) if error is not None else None,
        )


__all__ = ["CorruptIndexState", "GenerationTimeout", "InFlight", "InterviewSession", "Notice"]
