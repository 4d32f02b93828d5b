"""
ExamRecord and ExamAnswer models - one student's attempt and its answer ledger
"""
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, TIMESTAMP, ForeignKey, Index,
    UniqueConstraint, Uuid, func, text,
)
from sqlalchemy.orm import relationship
from examcore.database import Base, JSONType
import enum
import uuid


class RecordStatus(str, enum.Enum):
    # NOT_STARTED is virtual: no row exists before start
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


TERMINAL_STATUSES = (RecordStatus.COMPLETED.value, RecordStatus.EXPIRED.value)


class ExamRecord(Base):
    """
    Exam records table - attempt state, timing and stored score

    At most one in_progress row per (session_id, user_id), enforced by a
    partial unique index. `version` is bumped on every write to the row and
    checked by the ORM on flush.
    """
    __tablename__ = "exam_records"
    __table_args__ = (
        Index(
            "uq_exam_records_active_attempt",
            "session_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
        Index("ix_exam_records_user_status", "user_id", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("exam_sessions.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RecordStatus.IN_PROGRESS.value)
    attempt_number = Column(Integer, nullable=False, default=1)

    start_time = Column(TIMESTAMP, nullable=False)
    deadline = Column(TIMESTAMP, nullable=False)
    end_time = Column(TIMESTAMP)
    last_active_time = Column(TIMESTAMP)

    question_order = Column(JSONType, nullable=False, default=list)  # snapshot of question ids

    # Filled in once by scoring
    score = Column(Float)
    total_points = Column(Float)
    correct_answers = Column(Integer)
    accuracy = Column(Float)
    grade = Column(String(2))
    is_passed = Column(Boolean)
    result = Column(JSONType)  # full ScoreResult

    version = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    answers = relationship(
        "ExamAnswer",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="ExamAnswer.submitted_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<ExamRecord(id={self.id}, user_id={self.user_id}, status={self.status})>"


class ExamAnswer(Base):
    """
    Exam answers table - one row per (record, question); time_spent accumulates
    """
    __tablename__ = "exam_answers"
    __table_args__ = (
        UniqueConstraint("record_id", "question_id", name="uq_exam_answers_record_question"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    record_id = Column(Uuid(as_uuid=True), ForeignKey("exam_records.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(String(64), nullable=False)
    user_answer = Column(JSONType)  # str or list[str]
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    is_correct = Column(Boolean)
    points_awarded = Column(Float)
    submitted_at = Column(TIMESTAMP)

    record = relationship("ExamRecord", back_populates="answers")

    def __repr__(self):
        return f"<ExamAnswer(record_id={self.record_id}, question_id={self.question_id})>"
