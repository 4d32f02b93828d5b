"""
Pydantic schemas for exam history and statistics endpoints
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class HistoryItem(BaseModel):
    """One graded attempt in a student's history"""
    examRecordId: str
    sessionId: str
    sessionName: Optional[str] = None
    status: str
    attemptNumber: int
    startTime: datetime
    endTime: Optional[datetime] = None
    score: Optional[float] = None
    totalPoints: Optional[float] = None
    accuracy: Optional[float] = None
    grade: Optional[str] = None
    isPassed: Optional[bool] = None


class Pagination(BaseModel):
    currentPage: int
    totalPages: int
    totalItems: int
    itemsPerPage: int
    hasNextPage: bool
    hasPrevPage: bool


class ExamHistory(BaseModel):
    records: List[HistoryItem]
    pagination: Pagination


class UserStatistics(BaseModel):
    """Aggregates over a student's finished attempts"""
    totalExams: int
    completedExams: int
    averageScore: float
    highestScore: float
    lowestScore: float
    passRate: float


class SessionStatistics(BaseModel):
    """Aggregates over every finished attempt of one session"""
    sessionId: str
    totalParticipants: int
    completedCount: int
    averageScore: float
    highestScore: float
    lowestScore: float
    passRate: float
    averageTime: int
