"""
Answer ledger - per-attempt question -> answer map

One entry per question; the latest answer wins while time_spent accumulates
across repeated saves (auto-save while typing sends many small increments).
Writers must hold the parent ExamRecord row lock; the ledger touches the
record on every write so its version counter detects lost updates.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from examcore.models import ExamAnswer, ExamRecord
from examcore.services.scoring_service import AnswerEntry, is_blank

logger = logging.getLogger(__name__)


def merge_answer(
    previous_time: Optional[int],
    user_answer: Any,
    time_spent: int,
) -> Tuple[Any, int]:
    """
    Merge one save into an existing entry

    Returns:
        Tuple of (stored_answer, accumulated_time_spent)
    """
    increment = max(0, int(time_spent or 0))
    return user_answer, (previous_time or 0) + increment


class AnswerLedger:
    """SQL-backed answer ledger for graded attempts"""

    def upsert(
        self,
        db: Session,
        record: ExamRecord,
        question_id: str,
        user_answer: Any,
        time_spent: int,
        now: datetime,
    ) -> ExamAnswer:
        """
        Insert or update the ledger entry for one question

        Does not commit; the caller owns the transaction.
        """
        question_id = str(question_id)
        entry = db.query(ExamAnswer).filter(
            ExamAnswer.record_id == record.id,
            ExamAnswer.question_id == question_id
        ).first()

        if entry is None:
            stored, total = merge_answer(None, user_answer, time_spent)
            entry = ExamAnswer(
                record_id=record.id,
                question_id=question_id,
                user_answer=stored,
                time_spent=total,
                submitted_at=now,
            )
            db.add(entry)
            db.flush()
        else:
            entry.user_answer, entry.time_spent = merge_answer(entry.time_spent, user_answer, time_spent)
            entry.submitted_at = now

        # Touch the parent so its version_id_col is bumped on flush, even when
        # last_active_time is unchanged
        record.last_active_time = now
        flag_modified(record, "last_active_time")

        logger.debug(f"Ledger upsert: record={record.id}, question={question_id}, time_spent={entry.time_spent}")
        return entry

    def upsert_many(
        self,
        db: Session,
        record: ExamRecord,
        items: Iterable[Dict[str, Any]],
        now: datetime,
    ) -> List[ExamAnswer]:
        return [
            self.upsert(db, record, item["questionId"], item.get("answer"), item.get("timeSpent", 0), now)
            for item in items
        ]

    def get_all(self, db: Session, record_id) -> List[ExamAnswer]:
        return db.query(ExamAnswer).filter(ExamAnswer.record_id == record_id).all()

    def entries(self, db: Session, record_id) -> List[AnswerEntry]:
        """Ledger snapshot in the shape the scorer consumes"""
        return [
            AnswerEntry(
                question_id=row.question_id,
                user_answer=row.user_answer,
                time_spent=row.time_spent or 0,
            )
            for row in self.get_all(db, record_id)
        ]

    def answered_count(self, db: Session, record_id) -> int:
        return sum(1 for row in self.get_all(db, record_id) if not is_blank(row.user_answer))


# Global instance
answer_ledger = AnswerLedger()
