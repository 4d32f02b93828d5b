"""
Preview API endpoints - ungraded dry runs for teachers and admins
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime
from uuid import UUID
import logging

from examcore.database import get_db
from examcore.schemas.exam import ApiResponse
from examcore.schemas.preview import (
    PreviewAnswerRequest,
    PreviewBatchAnswerRequest,
    PreviewProgressResponse,
    PreviewStartResponse,
    PreviewSubmitRequest,
)
from examcore.services.preview_service import preview_service
from examcore.utils.clock import get_now
from examcore.utils.security import AUTHOR_ROLES, CurrentUser, require_roles


router = APIRouter(prefix="/api/exam-sessions", tags=["preview"])
logger = logging.getLogger(__name__)

require_author = require_roles(*AUTHOR_ROLES)


@router.post("/{session_id}/preview-start", response_model=ApiResponse[PreviewStartResponse])
async def preview_start(
    session_id: UUID,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_author),
):
    """
    Open a fresh preview attempt

    - No window or attempt-limit checks
    - Kept in the TTL store only (never in exam history)
    """
    data = preview_service.start(db, user, session_id, now)
    return ApiResponse(message="Preview started", data=PreviewStartResponse(**data))


@router.post("/{session_id}/preview-answer", response_model=ApiResponse[dict])
async def preview_answer(
    session_id: UUID,
    request: PreviewAnswerRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_author),
):
    data = preview_service.answer(
        db, session_id, request.previewId, request.questionId,
        request.answer, request.timeSpent, now
    )
    return ApiResponse(message="Answer saved", data=data)


@router.post("/{session_id}/preview-batch-answer", response_model=ApiResponse[dict])
async def preview_batch_answer(
    session_id: UUID,
    request: PreviewBatchAnswerRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_author),
):
    """Save several answers at once; all or nothing"""
    items = [item.model_dump() for item in request.answers]
    data = preview_service.batch_answer(db, session_id, request.previewId, items, now)
    return ApiResponse(message=f"{len(items)} answers saved", data=data)


@router.get("/{session_id}/preview-progress/{preview_id}", response_model=ApiResponse[PreviewProgressResponse])
async def preview_progress(
    session_id: UUID,
    preview_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_author),
):
    data = preview_service.progress(db, session_id, preview_id, now)
    return ApiResponse(data=PreviewProgressResponse(**data))


@router.post("/{session_id}/preview-submit", response_model=ApiResponse[dict])
async def preview_submit(
    session_id: UUID,
    request: PreviewSubmitRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_author),
):
    """Score the preview with the same engine as graded attempts"""
    data = preview_service.submit(db, session_id, request.previewId, now)
    return ApiResponse(message="Preview submitted", data=data)


@router.get("/{session_id}/preview-result/{preview_id}", response_model=ApiResponse[dict])
async def preview_result(
    session_id: UUID,
    preview_id: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    user: CurrentUser = Depends(require_author),
):
    data = preview_service.result(db, session_id, preview_id, now)
    return ApiResponse(data=data)
