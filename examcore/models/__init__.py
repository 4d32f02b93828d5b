"""
Database models package
"""
from examcore.models.paper import Paper
from examcore.models.exam_session import ExamSession, SessionStatus, SessionType
from examcore.models.exam_record import ExamRecord, ExamAnswer, RecordStatus, TERMINAL_STATUSES

__all__ = [
    "Paper",
    "ExamSession",
    "SessionStatus",
    "SessionType",
    "ExamRecord",
    "ExamAnswer",
    "RecordStatus",
    "TERMINAL_STATUSES",
]
