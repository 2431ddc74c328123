"""Helpers for creating and tracking interview sessions."""
from __future__ import annotations

from typing import Dict, Optional

from candidate_management import CandidateSession, CandidateStore
from config.registry import QUESTION_SOURCE_KEY, SCORING_SERVICE_KEY, get_model
from interview_session import InFlight, InterviewSession
from observability import log_event
from question_source import QuestionSource
from scoring_service import ScoringService


class SessionManager:
    """Owns the candidate store and one session controller per candidate."""

    def __init__(self, store: CandidateStore, question_source: QuestionSource, scoring: ScoringService) -> None:
        self.store = store
        self._question_source = question_source
        self._scoring = scoring
        self._sessions: Dict[str, InterviewSession] = {}
        # Torn-down controllers whose collaborator call has not settled yet.
        self._draining: Dict[str, InterviewSession] = {}

    def create_candidate(self, name: str) -> CandidateSession:
        record = self.store.create_candidate(name)
        self._sessions[record.id] = self._controller(record.id)
        return record

    def session_for(self, candidate_id: str) -> Optional[InterviewSession]:
        """Return the controller for ``candidate_id``, creating it for known candidates.

        A controller torn down mid-call is handed back instead of a new one, so
        its in-flight operation stays the only one for the candidate.
        """

        session = self._sessions.get(candidate_id)
        if session is not None:
            return session
        if self.store.get(candidate_id) is None:
            self._draining.pop(candidate_id, None)
            return None
        session = self._draining.pop(candidate_id, None)
        if session is not None and session.in_flight is not InFlight.NONE:
            session.reopen()
            log_event("session_reopened", candidate_id, in_flight=session.in_flight.value)
        else:
            session = self._controller(candidate_id)
        self._sessions[candidate_id] = session
        return session

    def reset(self, candidate_id: str) -> Optional[CandidateSession]:
        session = self.session_for(candidate_id)
        if session is None:
            return None
        return session.reset()

    def teardown(self, candidate_id: str) -> bool:
        """Stop the controller's timer and forget it; the stored record is kept."""

        session = self._sessions.pop(candidate_id, None)
        if session is None:
            return False
        session.close()
        if session.in_flight is not InFlight.NONE:
            self._draining[candidate_id] = session
        log_event("session_teardown", candidate_id, in_flight=session.in_flight.value)
        return True

    def close(self) -> None:
        for candidate_id in list(self._sessions):
            self.teardown(candidate_id)

    def _controller(self, candidate_id: str) -> InterviewSession:
        return InterviewSession(candidate_id, self.store, self._question_source, self._scoring)


def build_manager(store: Optional[CandidateStore] = None) -> SessionManager:
    """Create a manager from the collaborators bound in the registry."""

    return SessionManager(
        store or CandidateStore(),
        get_model(QUESTION_SOURCE_KEY),
        get_model(SCORING_SERVICE_KEY),
    )


__all__ = ["SessionManager", "build_manager"]
