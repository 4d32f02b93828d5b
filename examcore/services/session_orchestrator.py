"""
Session orchestrator - the façade behind /api/exam-sessions and /api/exam

Resolves the session and paper, checks role, participant list and record
ownership, then delegates every state change to the attempt state machine.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from examcore.config import settings
from examcore.errors import Forbidden, MaxAttemptsExceeded, NotFound
from examcore.models import ExamRecord, ExamSession
from examcore.services.answer_ledger import answer_ledger
from examcore.services.attempt_service import attempt_service, time_remaining
from examcore.services.catalog import catalog
from examcore.services.window_validator import can_join
from examcore.utils.security import CurrentUser, ROLE_STUDENT

logger = logging.getLogger(__name__)


def client_questions(questions: List[Dict[str, Any]], default_points: float) -> List[Dict[str, Any]]:
    """Strip answer keys before questions leave the server"""
    client = []
    for question in questions:
        points = question.get("points")
        client.append({
            "questionId": str(question.get("questionId")),
            "type": question.get("type"),
            "content": question.get("content"),
            "options": question.get("options"),
            "points": float(default_points if points is None else points),
        })
    return client


class SessionOrchestrator:
    """Entry points for graded attempts"""

    def _require_student(self, user: CurrentUser) -> None:
        if user.role != ROLE_STUDENT:
            raise Forbidden("Only students can take graded exams; use preview instead")

    def _require_participant(self, session: ExamSession, user: CurrentUser) -> None:
        participants = session.setting("participants") or []
        if participants and str(user.user_id) not in {str(p) for p in participants}:
            raise Forbidden("You are not a participant of this exam")

    def _load(self, db: Session, session_id: UUID):
        session = catalog.get_session(db, session_id)
        paper = catalog.get_paper(db, session.paper_id)
        return session, paper

    def _owned_record(
        self,
        db: Session,
        user: CurrentUser,
        record_id: UUID,
        session_id: Optional[UUID] = None,
    ) -> ExamRecord:
        record = attempt_service.get_record(db, record_id, for_update=True)
        if record.user_id != user.user_id:
            logger.warning(f"User {user.user_id} tried to act on record {record_id} owned by {record.user_id}")
            raise Forbidden("This exam record belongs to another user")
        if session_id is not None and record.session_id != session_id:
            raise NotFound("Exam record not found in this session")
        return record

    def join(self, db: Session, user: CurrentUser, session_id: UUID, now: datetime) -> Dict[str, Any]:
        """
        Validate that the caller may take this exam now

        No record is created; start does that.
        """
        self._require_student(user)
        session, _ = self._load(db, session_id)
        self._require_participant(session, user)
        can_join(session, now).raise_if_denied()

        if attempt_service.find_active(db, session.id, user.user_id) is None:
            max_attempts = int(session.setting("maxAttempts", settings.DEFAULT_MAX_ATTEMPTS))
            finished = attempt_service.count_finished(db, session.id, user.user_id)
            if finished >= max_attempts:
                raise MaxAttemptsExceeded(details={"attempts": finished, "maxAttempts": max_attempts})

        logger.info(f"User {user.user_id} joined session {session_id}")
        return {}

    def start(self, db: Session, user: CurrentUser, session_id: UUID, now: datetime) -> Dict[str, Any]:
        self._require_student(user)
        session, paper = self._load(db, session_id)
        self._require_participant(session, user)

        record, created = attempt_service.start(db, session, paper, user.user_id, now)
        questions = catalog.ordered_questions(paper, record.question_order or [])

        return {
            "examRecordId": record.id,
            "sessionId": record.session_id,
            "startTime": record.start_time,
            "endTime": record.deadline,
            "status": record.status,
            "attemptNumber": record.attempt_number,
            "resumed": not created,
            "timeRemaining": time_remaining(record, now),
            "questions": client_questions(questions, settings.DEFAULT_POINTS),
        }

    def answer(
        self,
        db: Session,
        user: CurrentUser,
        session_id: UUID,
        record_id: UUID,
        question_id: str,
        user_answer: Any,
        time_spent: int,
        now: datetime,
    ) -> Dict[str, Any]:
        self._require_student(user)
        session, paper = self._load(db, session_id)
        record = self._owned_record(db, user, record_id, session_id)
        attempt_service.answer(db, record, session, paper, question_id, user_answer, time_spent, now)
        return {}

    def progress(self, db: Session, user: CurrentUser, session_id: UUID, now: datetime) -> Dict[str, Any]:
        """Current (or most recent) attempt, after the lazy expiry check"""
        session, paper = self._load(db, session_id)

        record = attempt_service.find_active(db, session.id, user.user_id, for_update=True)
        if record is None:
            record = attempt_service.find_latest(db, session.id, user.user_id)
        if record is None:
            raise NotFound("No exam record for this session")

        attempt_service.ensure_fresh(db, record, session, paper, now)
        answered = answer_ledger.answered_count(db, record.id)

        return {
            "examRecordId": record.id,
            "status": record.status,
            "currentQuestion": answered,
            "answeredCount": answered,
            "totalQuestions": len(record.question_order or []),
            "timeRemaining": time_remaining(record, now),
        }

    def submit(
        self,
        db: Session,
        user: CurrentUser,
        record_id: UUID,
        now: datetime,
        session_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        self._require_student(user)
        record = self._owned_record(db, user, record_id, session_id)
        session, paper = self._load(db, record.session_id)
        return self._visible_result(session, user, attempt_service.submit(db, record, session, paper, now))

    def result(self, db: Session, user: CurrentUser, record_id: UUID, now: datetime) -> Dict[str, Any]:
        """Stored result of a finished attempt (authors may read any)"""
        record = attempt_service.get_record(db, record_id)
        if record.user_id != user.user_id and not user.is_author:
            raise Forbidden("This exam record belongs to another user")

        session, paper = self._load(db, record.session_id)
        attempt_service.ensure_fresh(db, record, session, paper, now)
        return self._visible_result(session, user, attempt_service.stored_result(record))

    def _visible_result(self, session: ExamSession, user: CurrentUser, result: Dict[str, Any]) -> Dict[str, Any]:
        """Apply showResults / allowReview for students"""
        if user.is_author:
            return result
        if not session.setting("showResults", True):
            return {
                "examRecordId": result.get("examRecordId"),
                "status": result.get("status"),
                "resultsHidden": True,
            }
        if not session.setting("allowReview", True):
            return dict(result, answers=[])
        return result


# Global instance
session_orchestrator = SessionOrchestrator()
