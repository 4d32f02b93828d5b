"""
Preview attempts - the author dry-run of a paper

Mirrors the graded flow (start, answer, progress, submit, result) but lives
only in the TTL preview store. Nothing here queries or writes the exam_records
or exam_answers tables, so a preview cannot reach graded history.
"""
import logging
import random
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from examcore.config import settings
from examcore.errors import AttemptExpired, InvalidAnswer, InvalidState, NotFound
from examcore.models import ExamSession, Paper, RecordStatus
from examcore.schemas.preview import PreviewAnswer, PreviewRecord
from examcore.services.answer_ledger import merge_answer
from examcore.services.catalog import catalog
from examcore.services.scoring_service import AnswerEntry, is_blank, scoring_service
from examcore.services.session_orchestrator import client_questions
from examcore.utils.cache import PreviewStore, preview_store
from examcore.utils.security import CurrentUser

logger = logging.getLogger(__name__)

TERMINAL = (RecordStatus.COMPLETED.value, RecordStatus.EXPIRED.value)


def _remaining(record: PreviewRecord, now: datetime) -> int:
    if record.status != RecordStatus.IN_PROGRESS.value:
        return 0
    return max(0, int((record.deadline - now).total_seconds()))


class PreviewService:
    """Ungraded attempts keyed by a generated previewId"""

    def __init__(self, store: PreviewStore, ttl_seconds: int):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _load(self, session_id: uuid.UUID, preview_id: str, now: datetime) -> PreviewRecord:
        raw = self.store.get(preview_id)
        if raw is None:
            raise NotFound("Preview not found or expired")
        record = PreviewRecord.model_validate(raw)
        if record.expiresAt <= now:
            self.store.delete(preview_id)
            raise NotFound("Preview not found or expired")
        if record.sessionId != str(session_id):
            raise NotFound("Preview not found in this session")
        return record

    def _save(self, record: PreviewRecord) -> None:
        self.store.save(record.previewId, record.model_dump(mode="json"))

    def _session_and_paper(self, db: Session, session_id: uuid.UUID):
        session = catalog.get_session(db, session_id)
        return session, catalog.get_paper(db, session.paper_id)

    def start(self, db: Session, user: CurrentUser, session_id: uuid.UUID, now: datetime) -> Dict[str, Any]:
        """
        Open a fresh preview on every call

        No window check, no attempt limit and no resume: authors preview drafts
        before they are scheduled.
        """
        session, paper = self._session_and_paper(db, session_id)
        preview_id = uuid.uuid4().hex

        order = [str(q.get("questionId")) for q in (paper.questions or [])]
        if session.setting("shuffleQuestions", False):
            random.Random(preview_id).shuffle(order)

        record = PreviewRecord(
            previewId=preview_id,
            sessionId=str(session.id),
            createdBy=str(user.user_id),
            status=RecordStatus.IN_PROGRESS.value,
            startTime=now,
            deadline=now + timedelta(minutes=session.duration),
            expiresAt=now + timedelta(seconds=self.ttl_seconds),
            questionOrder=order,
        )
        self.store.create(preview_id, record.model_dump(mode="json"), self.ttl_seconds)
        logger.info(f"Preview started: {preview_id} for session {session_id} by {user.user_id}")

        return {
            "previewRecord": {
                "previewId": preview_id,
                "sessionId": record.sessionId,
                "status": record.status,
                "startTime": record.startTime,
                "endTime": record.deadline,
                "expiresAt": record.expiresAt,
                "timeRemaining": _remaining(record, now),
                "isPreview": True,
                "questions": client_questions(
                    catalog.ordered_questions(paper, order), settings.DEFAULT_POINTS
                ),
            }
        }

    def answer(
        self,
        db: Session,
        session_id: uuid.UUID,
        preview_id: str,
        question_id: str,
        user_answer: Any,
        time_spent: int,
        now: datetime,
    ) -> Dict[str, Any]:
        return self.batch_answer(
            db, session_id, preview_id,
            [{"questionId": question_id, "answer": user_answer, "timeSpent": time_spent}],
            now,
        )

    def batch_answer(
        self,
        db: Session,
        session_id: uuid.UUID,
        preview_id: str,
        items: List[Dict[str, Any]],
        now: datetime,
    ) -> Dict[str, Any]:
        """Apply all answers or none"""
        session, paper = self._session_and_paper(db, session_id)
        with self.store.lock(preview_id):
            record = self._load(session_id, preview_id, now)
            self._ensure_fresh(record, session, paper, now)
            if record.status == RecordStatus.EXPIRED.value:
                raise AttemptExpired()
            if record.status != RecordStatus.IN_PROGRESS.value:
                raise InvalidState(f"Cannot answer a preview that is {record.status}")

            allowed = set(record.questionOrder)
            for item in items:
                if str(item["questionId"]) not in allowed:
                    raise InvalidAnswer(f"Question {item['questionId']} is not part of this exam")

            answers = dict(record.answers)
            for item in items:
                q_id = str(item["questionId"])
                previous = answers.get(q_id)
                stored, total = merge_answer(
                    previous.timeSpent if previous else None, item["answer"], item.get("timeSpent", 0)
                )
                answers[q_id] = PreviewAnswer(questionId=q_id, userAnswer=stored, timeSpent=total, submittedAt=now)

            record.answers = answers
            self._save(record)
        return {}

    def progress(self, db: Session, session_id: uuid.UUID, preview_id: str, now: datetime) -> Dict[str, Any]:
        session, paper = self._session_and_paper(db, session_id)
        with self.store.lock(preview_id):
            record = self._load(session_id, preview_id, now)
            self._ensure_fresh(record, session, paper, now)

        answered = sum(1 for a in record.answers.values() if not is_blank(a.userAnswer))
        return {
            "previewId": record.previewId,
            "status": record.status,
            "currentQuestion": answered,
            "answeredCount": answered,
            "totalQuestions": len(record.questionOrder),
            "timeRemaining": _remaining(record, now),
        }

    def submit(self, db: Session, session_id: uuid.UUID, preview_id: str, now: datetime) -> Dict[str, Any]:
        """Score once; repeated submits return the stored result"""
        session, paper = self._session_and_paper(db, session_id)
        with self.store.lock(preview_id):
            record = self._load(session_id, preview_id, now)
            self._ensure_fresh(record, session, paper, now)
            if record.status in TERMINAL:
                return dict(record.result)

            self._finalize(record, session, paper, RecordStatus.COMPLETED, now)
            self._save(record)

        logger.info(f"Preview submitted: {preview_id}, score={record.result['score']}")
        return dict(record.result)

    def result(self, db: Session, session_id: uuid.UUID, preview_id: str, now: datetime) -> Dict[str, Any]:
        session, paper = self._session_and_paper(db, session_id)
        with self.store.lock(preview_id):
            record = self._load(session_id, preview_id, now)
            self._ensure_fresh(record, session, paper, now)
        if record.status not in TERMINAL:
            raise InvalidState("Preview has not been submitted yet")
        return dict(record.result)

    def _ensure_fresh(self, record: PreviewRecord, session: ExamSession, paper: Paper, now: datetime) -> None:
        if record.status == RecordStatus.IN_PROGRESS.value and now > record.deadline:
            logger.info(f"Preview {record.previewId} passed its deadline, auto-submitting as expired")
            self._finalize(record, session, paper, RecordStatus.EXPIRED, record.deadline)
            self._save(record)

    def _finalize(
        self,
        record: PreviewRecord,
        session: ExamSession,
        paper: Paper,
        status: RecordStatus,
        end_time: datetime,
    ) -> None:
        entries = [
            AnswerEntry(question_id=a.questionId, user_answer=a.userAnswer, time_spent=a.timeSpent)
            for a in record.answers.values()
        ]
        result = scoring_service.score(
            entries,
            catalog.ordered_questions(paper, record.questionOrder),
            start_time=record.startTime,
            end_time=end_time,
            passing_score=float(session.setting("passingScore", settings.DEFAULT_PASSING_SCORE)),
            exam_record_id=record.previewId,
            session_id=record.sessionId,
        )
        result["status"] = status.value
        result["isPreview"] = True

        record.status = status.value
        record.endTime = end_time
        record.result = result


# Global instance
preview_service = PreviewService(preview_store, settings.PREVIEW_TTL_SECONDS)
