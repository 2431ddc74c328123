"""FastAPI routes for interview session control."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from api.schemas import CreateCandidateReq, DraftReq, SessionView, SubmitReq, TeardownResp
from candidate_management import CandidateSession
from interview_session import InterviewSession
from services.sessions import SessionManager, build_manager


router = APIRouter(prefix="/api/candidates")

_manager: Optional[SessionManager] = None


def get_manager() -> SessionManager:
    global _manager
    if _manager is None:
        _manager = build_manager()
    return _manager


def peek_manager() -> Optional[SessionManager]:
    return _manager


def set_manager(manager: Optional[SessionManager]) -> None:
    global _manager
    _manager = manager


def _session_or_404(manager: SessionManager, candidate_id: str) -> InterviewSession:
    session = manager.session_for(candidate_id)
    if session is None:
        raise HTTPException(status_code=404, detail="candidate not found")
    return session


def _view(session: InterviewSession, record: Optional[CandidateSession]) -> SessionView:
    if record is None:
        raise HTTPException(status_code=404, detail="candidate not found")
    return SessionView(
        candidate=record,
        current_question=record.current_question(),
        draft=session.draft,
        in_flight=session.in_flight.value,
        timer_running=session.timer_running,
        notices=list(session.notices),
    )


@router.post("", response_model=SessionView)
async def create_candidate(req: CreateCandidateReq, manager: SessionManager = Depends(get_manager)) -> SessionView:
    record = manager.create_candidate(req.name)
    return _view(_session_or_404(manager, record.id), record)


@router.get("", response_model=List[CandidateSession])
async def list_candidates(manager: SessionManager = Depends(get_manager)) -> List[CandidateSession]:
    return manager.store.list_candidates()


@router.get("/{candidate_id}", response_model=SessionView)
async def observe(candidate_id: str, manager: SessionManager = Depends(get_manager)) -> SessionView:
    session = _session_or_404(manager, candidate_id)
    return _view(session, await session.observe())


@router.put("/{candidate_id}/draft", response_model=SessionView)
async def edit_draft(candidate_id: str, req: DraftReq, manager: SessionManager = Depends(get_manager)) -> SessionView:
    session = _session_or_404(manager, candidate_id)
    session.edit_answer(req.text)
    return _view(session, manager.store.get(candidate_id))


@router.post("/{candidate_id}/submit", response_model=SessionView)
async def submit(candidate_id: str, req: SubmitReq, manager: SessionManager = Depends(get_manager)) -> SessionView:
    session = _session_or_404(manager, candidate_id)
    return _view(session, await session.submit_answer(req.text, index=req.index))


@router.post("/{candidate_id}/pause", response_model=SessionView)
async def toggle_pause(candidate_id: str, manager: SessionManager = Depends(get_manager)) -> SessionView:
    session = _session_or_404(manager, candidate_id)
    return _view(session, await session.toggle_pause())


@router.post("/{candidate_id}/reset", response_model=SessionView)
async def reset(candidate_id: str, manager: SessionManager = Depends(get_manager)) -> SessionView:
    session = _session_or_404(manager, candidate_id)
    return _view(session, manager.reset(candidate_id))


@router.delete("/{candidate_id}/session", response_model=TeardownResp)
async def teardown(candidate_id: str, manager: SessionManager = Depends(get_manager)) -> TeardownResp:
    if manager.store.get(candidate_id) is None:
        raise HTTPException(status_code=404, detail="candidate not found")
    return TeardownResp(candidate_id=candidate_id, torn_down=manager.teardown(candidate_id))
