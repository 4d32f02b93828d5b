"""
Pydantic schemas for exam attempt requests and responses
"""
from pydantic import BaseModel, Field
from typing import Any, Generic, List, Optional, TypeVar, Union
from uuid import UUID
from datetime import datetime


T = TypeVar("T")

# single_choice / fill_blank send a string, multiple_choice a list of option keys
AnswerValue = Union[str, List[str]]


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every endpoint"""
    success: bool = True
    message: str = "OK"
    data: Optional[T] = None


class AnswerRequest(BaseModel):
    """Schema for saving one answer"""
    examId: UUID = Field(..., description="Exam record id")
    questionId: str = Field(..., min_length=1)
    answer: AnswerValue
    timeSpent: int = Field(0, ge=0, description="Seconds spent since the last save")


class SubmitRequest(BaseModel):
    """Schema for submitting an attempt"""
    recordId: UUID


class ClientQuestion(BaseModel):
    """Question as shown to a student (no answer key)"""
    questionId: str
    type: str
    content: Optional[str] = None
    options: Optional[List[Any]] = None
    points: float


class StartResponse(BaseModel):
    """Attempt opened or resumed"""
    examRecordId: UUID
    sessionId: UUID
    startTime: datetime
    endTime: datetime
    status: str
    attemptNumber: int
    resumed: bool
    timeRemaining: int
    questions: List[ClientQuestion]


class ProgressResponse(BaseModel):
    """Read-only projection of the current attempt"""
    examRecordId: UUID
    status: str
    currentQuestion: int
    answeredCount: int
    totalQuestions: int
    timeRemaining: int


class AnswerResult(BaseModel):
    """Scored answer"""
    questionId: str
    type: Optional[str] = None
    userAnswer: Optional[AnswerValue] = None
    correctAnswer: Optional[Any] = None
    isCorrect: bool
    pointsAwarded: float
    points: float
    timeSpent: int


class ScoreStatistics(BaseModel):
    averageTimePerQuestion: int
    fastestQuestion: int
    slowestQuestion: int
    skippedQuestions: int


class ScoreResult(BaseModel):
    """Final result of an attempt"""
    examRecordId: Optional[str] = None
    sessionId: Optional[str] = None
    userId: Optional[str] = None
    status: Optional[str] = None
    totalQuestions: int
    answeredQuestions: int
    correctAnswers: int
    score: float
    totalPoints: float
    accuracy: float
    timeUsed: int
    isPassed: bool
    grade: str
    answers: List[AnswerResult] = []
    statistics: ScoreStatistics


class ResultReceipt(BaseModel):
    """Returned to students instead of a ScoreResult when results are not released"""
    examRecordId: Optional[str] = None
    status: Optional[str] = None
    resultsHidden: bool = True

    class Config:
        extra = "forbid"
