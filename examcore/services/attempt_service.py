"""
Attempt state machine

not_started (no row) -> in_progress -> completed | expired

Every entry point that mutates an ExamRecord or its ledger lives here. Expiry
is lazy: any access to an in_progress record past its deadline first scores
the ledger as it stood and seals the record as expired.
"""
import logging
import random
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from examcore.config import settings
from examcore.errors import (
    AttemptExpired, ConcurrentUpdate, InvalidAnswer, InvalidState,
    MaxAttemptsExceeded, NotFound, StorageUnavailable,
)
from examcore.models import ExamAnswer, ExamRecord, ExamSession, Paper, RecordStatus, TERMINAL_STATUSES
from examcore.services.answer_ledger import answer_ledger
from examcore.services.catalog import catalog
from examcore.services.scoring_service import scoring_service
from examcore.services.window_validator import can_start

logger = logging.getLogger(__name__)


@contextmanager
def write_transaction(db: Session):
    """Commit on success; map storage races and outages onto the error taxonomy"""
    try:
        yield
        db.commit()
    except (StaleDataError, IntegrityError) as e:
        db.rollback()
        logger.warning(f"Concurrent modification detected: {str(e)}")
        raise ConcurrentUpdate() from e
    except OperationalError as e:
        db.rollback()
        logger.error(f"Database unavailable: {str(e)}")
        raise StorageUnavailable() from e
    except Exception:
        db.rollback()
        raise


def question_order_for(session: ExamSession, paper: Paper, user_id: UUID) -> List[str]:
    """
    Question ids in the order this student sees them

    With shuffleQuestions on, the order is seeded by session and user so a
    reload (or a resumed attempt) shows the same sequence.
    """
    order = [str(q.get("questionId")) for q in (paper.questions or [])]
    if session.setting("shuffleQuestions", False):
        random.Random(f"{session.id}:{user_id}").shuffle(order)
    return order


def time_remaining(record: ExamRecord, now: datetime) -> int:
    """Seconds left before the deadline (0 once terminal or overdue)"""
    if record.status != RecordStatus.IN_PROGRESS.value:
        return 0
    return max(0, int((record.deadline - now).total_seconds()))


class AttemptService:
    """Guarded transitions for one (session, student) attempt"""

    def find_active(self, db: Session, session_id: UUID, user_id: UUID, for_update: bool = False) -> Optional[ExamRecord]:
        query = db.query(ExamRecord).filter(
            ExamRecord.session_id == session_id,
            ExamRecord.user_id == user_id,
            ExamRecord.status == RecordStatus.IN_PROGRESS.value
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def find_latest(self, db: Session, session_id: UUID, user_id: UUID) -> Optional[ExamRecord]:
        return db.query(ExamRecord).filter(
            ExamRecord.session_id == session_id,
            ExamRecord.user_id == user_id
        ).order_by(ExamRecord.attempt_number.desc()).first()

    def get_record(self, db: Session, record_id: UUID, for_update: bool = False) -> ExamRecord:
        query = db.query(ExamRecord).filter(ExamRecord.id == record_id)
        if for_update:
            query = query.with_for_update()
        record = query.first()
        if not record:
            raise NotFound("Exam record not found")
        return record

    def count_finished(self, db: Session, session_id: UUID, user_id: UUID) -> int:
        return db.query(ExamRecord).filter(
            ExamRecord.session_id == session_id,
            ExamRecord.user_id == user_id,
            ExamRecord.status.in_(TERMINAL_STATUSES)
        ).count()

    def start(
        self,
        db: Session,
        session: ExamSession,
        paper: Paper,
        user_id: UUID,
        now: datetime,
    ) -> Tuple[ExamRecord, bool]:
        """
        Open an attempt, or resume the one already in progress

        Returns:
            Tuple of (record, created)
        """
        can_start(session, now).raise_if_denied()

        existing = self.find_active(db, session.id, user_id, for_update=True)
        if existing is not None:
            self.ensure_fresh(db, existing, session, paper, now)
            if existing.status == RecordStatus.IN_PROGRESS.value:
                logger.info(f"Resuming attempt {existing.id} for user {user_id}")
                return existing, False

        max_attempts = int(session.setting("maxAttempts", settings.DEFAULT_MAX_ATTEMPTS))
        finished = self.count_finished(db, session.id, user_id)
        if finished >= max_attempts:
            raise MaxAttemptsExceeded(
                f"Maximum attempts reached ({finished}/{max_attempts})",
                details={"attempts": finished, "maxAttempts": max_attempts}
            )

        record = ExamRecord(
            session_id=session.id,
            user_id=user_id,
            status=RecordStatus.IN_PROGRESS.value,
            attempt_number=finished + 1,
            start_time=now,
            deadline=now + timedelta(minutes=session.duration),
            last_active_time=now,
            question_order=question_order_for(session, paper, user_id),
        )

        try:
            with write_transaction(db):
                db.add(record)
        except ConcurrentUpdate:
            # Lost the race against a parallel start; the winner is the attempt
            winner = self.find_active(db, session.id, user_id)
            if winner is None:
                raise
            return winner, False

        db.refresh(record)
        logger.info(
            f"Attempt started: record={record.id}, session={session.id}, user={user_id}, "
            f"attempt={record.attempt_number}/{max_attempts}"
        )
        return record, True

    def ensure_fresh(
        self,
        db: Session,
        record: ExamRecord,
        session: ExamSession,
        paper: Paper,
        now: datetime,
    ) -> ExamRecord:
        """Lazy expiry: seal an overdue in_progress record before anyone reads it"""
        if record.status == RecordStatus.IN_PROGRESS.value and now > record.deadline:
            logger.info(f"Attempt {record.id} passed its deadline, auto-submitting as expired")
            with write_transaction(db):
                self._finalize(db, record, session, paper, RecordStatus.EXPIRED, record.deadline)
        return record

    def answer(
        self,
        db: Session,
        record: ExamRecord,
        session: ExamSession,
        paper: Paper,
        question_id: str,
        user_answer: Any,
        time_spent: int,
        now: datetime,
    ) -> ExamAnswer:
        """Record one answer; never scores"""
        return self.answer_many(
            db, record, session, paper,
            [{"questionId": question_id, "answer": user_answer, "timeSpent": time_spent}],
            now,
        )[0]

    def answer_many(
        self,
        db: Session,
        record: ExamRecord,
        session: ExamSession,
        paper: Paper,
        items: List[Dict[str, Any]],
        now: datetime,
    ) -> List[ExamAnswer]:
        self.ensure_fresh(db, record, session, paper, now)
        if record.status == RecordStatus.EXPIRED.value:
            raise AttemptExpired()
        if record.status != RecordStatus.IN_PROGRESS.value:
            raise InvalidState(f"Cannot answer an attempt that is {record.status}")

        allowed = set(record.question_order or [])
        for item in items:
            if str(item["questionId"]) not in allowed:
                raise InvalidAnswer(f"Question {item['questionId']} is not part of this exam")

        with write_transaction(db):
            rows = answer_ledger.upsert_many(db, record, items, now)
        return rows

    def submit(
        self,
        db: Session,
        record: ExamRecord,
        session: ExamSession,
        paper: Paper,
        now: datetime,
    ) -> Dict[str, Any]:
        """
        Score and close the attempt; idempotent

        A record that is already terminal (completed, or expired by the lazy
        check) returns its stored result without re-scoring.
        """
        self.ensure_fresh(db, record, session, paper, now)
        if record.is_terminal:
            logger.info(f"Submit on terminal attempt {record.id}, returning stored result")
            return self.stored_result(record)

        with write_transaction(db):
            result = self._finalize(db, record, session, paper, RecordStatus.COMPLETED, now)

        logger.info(f"Attempt submitted: record={record.id}, score={result['score']}/{result['totalPoints']}")
        return result

    def stored_result(self, record: ExamRecord) -> Dict[str, Any]:
        if not record.is_terminal or record.result is None:
            raise InvalidState("Exam has not been completed yet")
        return dict(record.result)

    def _finalize(
        self,
        db: Session,
        record: ExamRecord,
        session: ExamSession,
        paper: Paper,
        status: RecordStatus,
        end_time: datetime,
    ) -> Dict[str, Any]:
        """Score the ledger once and seal the record in a terminal state"""
        questions = catalog.ordered_questions(paper, record.question_order or [])
        rows = answer_ledger.get_all(db, record.id)

        result = scoring_service.score(
            answer_ledger.entries(db, record.id),
            questions,
            start_time=record.start_time,
            end_time=end_time,
            passing_score=float(session.setting("passingScore", settings.DEFAULT_PASSING_SCORE)),
            exam_record_id=str(record.id),
            session_id=str(record.session_id),
            user_id=str(record.user_id),
        )
        result["status"] = status.value

        graded = {item["questionId"]: item for item in result["answers"]}
        for row in rows:
            item = graded.get(row.question_id)
            row.is_correct = bool(item and item["isCorrect"])
            row.points_awarded = item["pointsAwarded"] if item else 0.0

        record.status = status.value
        record.end_time = end_time
        record.last_active_time = end_time
        record.score = result["score"]
        record.total_points = result["totalPoints"]
        record.correct_answers = result["correctAnswers"]
        record.accuracy = result["accuracy"]
        record.grade = result["grade"]
        record.is_passed = result["isPassed"]
        record.result = result
        return result


# Global instance
attempt_service = AttemptService()
