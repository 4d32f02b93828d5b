"""
Exam session API endpoints - join, start, answer, progress and submit
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Union
from uuid import UUID
import logging

from examcore.database import get_db
from examcore.schemas.exam import (
    AnswerRequest,
    ApiResponse,
    ProgressResponse,
    ResultReceipt,
    ScoreResult,
    StartResponse,
    SubmitRequest,
)
from examcore.schemas.history import SessionStatistics
from examcore.services.history_service import history_service
from examcore.services.session_orchestrator import session_orchestrator
from examcore.utils.clock import get_now
from examcore.utils.security import AUTHOR_ROLES, CurrentUser, get_current_user, require_roles


router = APIRouter(prefix="/api/exam-sessions", tags=["exam-sessions"])
logger = logging.getLogger(__name__)


@router.post("/{session_id}/join", response_model=ApiResponse[dict])
async def join_session(
    session_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Check that the caller may take this exam now

    - Session must be published/active and inside its window
    - Caller must be a listed participant (when the session restricts them)
    - Attempts must not be used up
    """
    data = session_orchestrator.join(db, user, session_id, now)
    return ApiResponse(message="Joined exam session", data=data)


@router.post("/{session_id}/start", response_model=ApiResponse[StartResponse])
async def start_exam(
    session_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Open an attempt, or resume the one already in progress

    Questions are returned in the attempt's order, without answer keys.
    """
    data = session_orchestrator.start(db, user, session_id, now)
    message = "Exam resumed" if data["resumed"] else "Exam started"
    return ApiResponse(message=message, data=StartResponse(**data))


@router.get("/{session_id}/progress", response_model=ApiResponse[ProgressResponse])
async def get_progress(
    session_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """Current attempt status and time remaining"""
    data = session_orchestrator.progress(db, user, session_id, now)
    return ApiResponse(data=ProgressResponse(**data))


@router.post("/{session_id}/answer", response_model=ApiResponse[dict])
async def save_answer(
    session_id: UUID,
    request: AnswerRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Save (or overwrite) one answer

    Nothing is scored here; timeSpent accumulates across saves.
    """
    data = session_orchestrator.answer(
        db, user, session_id, request.examId, request.questionId,
        request.answer, request.timeSpent, now
    )
    return ApiResponse(message="Answer saved", data=data)


@router.post("/{session_id}/submit", response_model=ApiResponse[Union[ScoreResult, ResultReceipt]])
async def submit_exam(
    session_id: UUID,
    request: SubmitRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Score and close the attempt

    Submitting an attempt that is already closed returns its stored result.
    """
    data = session_orchestrator.submit(db, user, request.recordId, now, session_id=session_id)
    return ApiResponse(message="Exam submitted", data=data)


@router.get("/{session_id}/statistics", response_model=ApiResponse[SessionStatistics])
async def get_session_statistics(
    session_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_roles(*AUTHOR_ROLES)),
):
    """Aggregate results of every finished attempt (teachers and admins)"""
    logger.info(f"Fetching statistics for session {session_id} by {user.user_id}")
    data = history_service.get_session_statistics(db, session_id, now=now)
    return ApiResponse(data=SessionStatistics(**data))
