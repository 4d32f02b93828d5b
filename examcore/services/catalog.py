"""
Read-only access to sessions and papers owned by the authoring subsystem
"""
import logging
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.orm import Session

from examcore.errors import NotFound
from examcore.models import ExamSession, Paper

logger = logging.getLogger(__name__)


class Catalog:
    """Session and paper lookups"""

    def get_session(self, db: Session, session_id: UUID) -> ExamSession:
        session = db.query(ExamSession).filter(ExamSession.id == session_id).first()
        if not session:
            raise NotFound("Exam session not found")
        return session

    def get_paper(self, db: Session, paper_id: UUID) -> Paper:
        paper = db.query(Paper).filter(Paper.id == paper_id).first()
        if not paper:
            logger.error(f"Paper {paper_id} referenced by a session does not exist")
            raise NotFound("Exam paper not found")
        return paper

    def ordered_questions(self, paper: Paper, question_order: List[str]) -> List[Dict[str, Any]]:
        """
        Paper questions arranged in an attempt's snapshotted order

        Only questions captured in the snapshot take part in the attempt.
        """
        by_id = {str(q.get("questionId")): q for q in (paper.questions or [])}
        return [by_id[q_id] for q_id in question_order if q_id in by_id]


# Global instance
catalog = Catalog()
