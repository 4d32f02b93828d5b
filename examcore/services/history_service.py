"""
History and statistics over graded attempts

Only terminal ExamRecord rows count towards statistics. Every report first
seals overdue in_progress attempts, so an abandoned attempt shows up expired
and scored. Preview attempts never reach these tables.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from examcore.config import settings
from examcore.models import ExamRecord, ExamSession, RecordStatus, TERMINAL_STATUSES
from examcore.services.attempt_service import attempt_service
from examcore.services.catalog import catalog
from examcore.utils.clock import utcnow

logger = logging.getLogger(__name__)


class HistoryService:
    """Read-only reports for students and authors"""

    def get_exam_history(
        self,
        db: Session,
        user_id: UUID,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        session_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Paginated attempts of one student, newest first

        Args:
            db: Database session
            user_id: Student id
            page: 1-based page number
            limit: Page size (capped at HISTORY_PAGE_LIMIT)
            status: Optional record status filter
            session_id: Optional session filter
            now: Instant used for the lazy expiry check (defaults to the wall clock)

        Returns:
            Dictionary with records and a pagination block
        """
        page = max(1, page)
        limit = max(1, min(limit, settings.HISTORY_PAGE_LIMIT))
        self.expire_overdue(db, now or utcnow(), user_id=user_id)

        query = db.query(ExamRecord, ExamSession.name).outerjoin(
            ExamSession, ExamSession.id == ExamRecord.session_id
        ).filter(ExamRecord.user_id == user_id)
        if status:
            query = query.filter(ExamRecord.status == status)
        if session_id:
            query = query.filter(ExamRecord.session_id == session_id)

        total = query.count()
        rows = query.order_by(
            ExamRecord.start_time.desc(),
            ExamRecord.attempt_number.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        total_pages = math.ceil(total / limit) if total else 0

        return {
            "records": [self._history_item(record, name) for record, name in rows],
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalItems": total,
                "itemsPerPage": limit,
                "hasNextPage": page < total_pages,
                "hasPrevPage": page > 1,
            }
        }

    def expire_overdue(
        self,
        db: Session,
        now: datetime,
        user_id: Optional[UUID] = None,
        session_id: Optional[UUID] = None,
    ) -> int:
        """
        Run the lazy expiry on in_progress attempts whose deadline has passed

        Returns:
            Number of attempts sealed as expired
        """
        query = db.query(ExamRecord).filter(
            ExamRecord.status == RecordStatus.IN_PROGRESS.value,
            ExamRecord.deadline < now
        )
        if user_id is not None:
            query = query.filter(ExamRecord.user_id == user_id)
        if session_id is not None:
            query = query.filter(ExamRecord.session_id == session_id)

        overdue = query.with_for_update().all()
        loaded = {}
        for record in overdue:
            if record.session_id not in loaded:
                session = catalog.get_session(db, record.session_id)
                loaded[record.session_id] = (session, catalog.get_paper(db, session.paper_id))
            session, paper = loaded[record.session_id]
            attempt_service.ensure_fresh(db, record, session, paper, now)

        if overdue:
            logger.info(f"Expired {len(overdue)} overdue attempt(s) before reporting")
        return len(overdue)

    def _history_item(self, record: ExamRecord, session_name: Optional[str]) -> Dict[str, Any]:
        return {
            "examRecordId": str(record.id),
            "sessionId": str(record.session_id),
            "sessionName": session_name,
            "status": record.status,
            "attemptNumber": record.attempt_number,
            "startTime": record.start_time,
            "endTime": record.end_time,
            "score": record.score,
            "totalPoints": record.total_points,
            "accuracy": record.accuracy,
            "grade": record.grade,
            "isPassed": record.is_passed,
        }

    def get_user_statistics(self, db: Session, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregate a student's finished attempts"""
        self.expire_overdue(db, now or utcnow(), user_id=user_id)

        total_exams = db.query(func.count(ExamRecord.id)).filter(
            ExamRecord.user_id == user_id
        ).scalar() or 0

        finished = db.query(ExamRecord).filter(
            ExamRecord.user_id == user_id,
            ExamRecord.status.in_(TERMINAL_STATUSES)
        ).all()

        summary = self._summarize(finished)
        return {
            "totalExams": total_exams,
            "completedExams": len(finished),
            "averageScore": summary["averageScore"],
            "highestScore": summary["highestScore"],
            "lowestScore": summary["lowestScore"],
            "passRate": summary["passRate"],
        }

    def get_session_statistics(self, db: Session, session_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregate every finished attempt of one session"""
        session = catalog.get_session(db, session_id)
        self.expire_overdue(db, now or utcnow(), session_id=session.id)

        participants = db.query(func.count(func.distinct(ExamRecord.user_id))).filter(
            ExamRecord.session_id == session.id
        ).scalar() or 0

        finished = db.query(ExamRecord).filter(
            ExamRecord.session_id == session.id,
            ExamRecord.status.in_(TERMINAL_STATUSES)
        ).all()

        summary = self._summarize(finished)
        durations = [
            int((r.end_time - r.start_time).total_seconds())
            for r in finished if r.end_time and r.start_time
        ]
        average_time = int(sum(durations) / len(durations)) if durations else 0

        logger.info(f"Session statistics computed for {session_id}: {len(finished)} finished attempts")

        return {
            "sessionId": str(session.id),
            "totalParticipants": participants,
            "completedCount": len(finished),
            "averageScore": summary["averageScore"],
            "highestScore": summary["highestScore"],
            "lowestScore": summary["lowestScore"],
            "passRate": summary["passRate"],
            "averageTime": average_time,
        }

    def _summarize(self, records: List[ExamRecord]) -> Dict[str, float]:
        scores = [float(r.score) for r in records if r.score is not None]
        if not scores:
            return {"averageScore": 0.0, "highestScore": 0.0, "lowestScore": 0.0, "passRate": 0.0}

        passed = sum(1 for r in records if r.is_passed)
        return {
            "averageScore": round(sum(scores) / len(scores), 2),
            "highestScore": max(scores),
            "lowestScore": min(scores),
            "passRate": round(passed / len(records) * 100, 2),
        }


# Global instance
history_service = HistoryService()
