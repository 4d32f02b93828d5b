"""
Paper model - ordered questions with answer keys
"""
from sqlalchemy import Column, String, TIMESTAMP, Uuid, func
from examcore.database import Base, JSONType
import uuid


class Paper(Base):
    """
    Papers table - question list stored as JSON

    Each question: {questionId, type, content, options, correctAnswer, points}
    """
    __tablename__ = "papers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(String(500))
    questions = Column(JSONType, nullable=False, default=list)
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<Paper(id={self.id}, title={self.title})>"
