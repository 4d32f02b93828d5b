"""
Pydantic schemas for preview (author dry-run) attempts
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime

from examcore.schemas.exam import AnswerValue, ClientQuestion


class PreviewAnswer(BaseModel):
    """Ledger entry of a preview attempt"""
    questionId: str
    userAnswer: AnswerValue
    timeSpent: int = 0
    submittedAt: datetime


class PreviewRecord(BaseModel):
    """Same shape as an exam record, keyed by previewId instead of user+session"""
    previewId: str
    sessionId: str
    createdBy: str
    status: str
    startTime: datetime
    deadline: datetime
    endTime: Optional[datetime] = None
    expiresAt: datetime
    questionOrder: List[str]
    answers: Dict[str, PreviewAnswer] = {}
    result: Optional[dict] = None
    expiresAtTs: Optional[float] = None  # store clock, set on create


class PreviewAnswerRequest(BaseModel):
    previewId: str = Field(..., min_length=1)
    questionId: str = Field(..., min_length=1)
    answer: AnswerValue
    questionType: Optional[str] = None
    timeSpent: int = Field(0, ge=0)


class PreviewBatchItem(BaseModel):
    questionId: str = Field(..., min_length=1)
    answer: AnswerValue
    timeSpent: int = Field(0, ge=0)


class PreviewBatchAnswerRequest(BaseModel):
    previewId: str = Field(..., min_length=1)
    answers: List[PreviewBatchItem]


class PreviewSubmitRequest(BaseModel):
    previewId: str = Field(..., min_length=1)


class PreviewStartRecord(BaseModel):
    previewId: str
    sessionId: str
    status: str
    startTime: datetime
    endTime: datetime
    expiresAt: datetime
    timeRemaining: int
    isPreview: bool = True
    questions: List[ClientQuestion]


class PreviewStartResponse(BaseModel):
    previewRecord: PreviewStartRecord


class PreviewProgressResponse(BaseModel):
    previewId: str
    status: str
    currentQuestion: int
    answeredCount: int
    totalQuestions: int
    timeRemaining: int
