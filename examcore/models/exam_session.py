"""
ExamSession model - authoring-time exam configuration (read-only for the core)
"""
from sqlalchemy import Column, String, Integer, TIMESTAMP, ForeignKey, Uuid, func
from examcore.database import Base, JSONType
import enum
import uuid


class SessionType(str, enum.Enum):
    SCHEDULED = "scheduled"
    ON_DEMAND = "on_demand"


class SessionStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExamSession(Base):
    """
    Exam sessions table - timing rules and settings for one exam instance

    Scheduled sessions use start_time/end_time; on-demand sessions use
    available_from and an optional available_until.
    """
    __tablename__ = "exam_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    paper_id = Column(Uuid(as_uuid=True), ForeignKey("papers.id"), nullable=False)
    creator_id = Column(Uuid(as_uuid=True), nullable=True)
    type = Column(String(20), nullable=False, default=SessionType.SCHEDULED.value)
    status = Column(String(20), nullable=False, default=SessionStatus.DRAFT.value, index=True)
    duration = Column(Integer, nullable=False)  # minutes
    start_time = Column(TIMESTAMP)
    end_time = Column(TIMESTAMP)
    available_from = Column(TIMESTAMP)
    available_until = Column(TIMESTAMP)
    settings = Column(JSONType, nullable=False, default=dict)
    created_at = Column(TIMESTAMP, server_default=func.now())

    @property
    def is_on_demand(self) -> bool:
        return self.type == SessionType.ON_DEMAND.value

    def setting(self, key, default=None):
        return (self.settings or {}).get(key, default)

    def __repr__(self):
        return f"<ExamSession(id={self.id}, name={self.name}, type={self.type}, status={self.status})>"
