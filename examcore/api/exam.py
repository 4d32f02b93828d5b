"""
Exam record API endpoints - completion, results, history and statistics
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Union
from uuid import UUID
import logging

from examcore.database import get_db
from examcore.schemas.exam import ApiResponse, ResultReceipt, ScoreResult, SubmitRequest
from examcore.schemas.history import ExamHistory, UserStatistics
from examcore.services.history_service import history_service
from examcore.services.session_orchestrator import session_orchestrator
from examcore.utils.clock import get_now
from examcore.utils.security import CurrentUser, get_current_user


router = APIRouter(prefix="/api/exam", tags=["exam"])
logger = logging.getLogger(__name__)


@router.post("/complete", response_model=ApiResponse[Union[ScoreResult, ResultReceipt]])
async def complete_exam(
    request: SubmitRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """Submit by record id alone (same semantics as the session submit)"""
    data = session_orchestrator.submit(db, user, request.recordId, now)
    return ApiResponse(message="Exam submitted", data=data)


@router.get("/result/{record_id}", response_model=ApiResponse[Union[ScoreResult, ResultReceipt]])
async def get_result(
    record_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """
    Stored result of a finished attempt

    Students read their own records; teachers and admins may read any.
    """
    data = session_orchestrator.result(db, user, record_id, now)
    return ApiResponse(data=data)


@router.get("/history", response_model=ApiResponse[ExamHistory])
async def get_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    status: Optional[str] = Query(None),
    sessionId: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    """Caller's graded attempts, newest first"""
    logger.info(f"Fetching exam history for user {user.user_id} (page {page})")
    data = history_service.get_exam_history(
        db, user.user_id, page=page, limit=limit, status=status, session_id=sessionId, now=now
    )
    return ApiResponse(data=ExamHistory(**data))


@router.get("/statistics", response_model=ApiResponse[UserStatistics])
async def get_statistics(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(get_current_user),
):
    data = history_service.get_user_statistics(db, user.user_id, now=now)
    return ApiResponse(data=UserStatistics(**data))
