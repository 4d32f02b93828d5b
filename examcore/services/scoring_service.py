"""
Exam scoring service
single_choice: exact match
fill_blank: whitespace-normalized exact match (case-sensitive)
multiple_choice: set equality, all-or-nothing
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime

from examcore.config import settings

logger = logging.getLogger(__name__)

SINGLE_CHOICE = "single_choice"
MULTIPLE_CHOICE = "multiple_choice"
FILL_BLANK = "fill_blank"
QUESTION_TYPES = (SINGLE_CHOICE, MULTIPLE_CHOICE, FILL_BLANK)

GRADE_BANDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


@dataclass(frozen=True)
class AnswerEntry:
    """One ledger entry as seen by the scorer"""
    question_id: str
    user_answer: Any
    time_spent: int = 0


def normalize_blank(value: str) -> str:
    """Trim and collapse internal whitespace runs to a single space"""
    return " ".join(value.split())


def is_blank(user_answer: Any) -> bool:
    if user_answer is None:
        return True
    if isinstance(user_answer, str):
        return user_answer.strip() == ""
    if isinstance(user_answer, (list, tuple)):
        return len(user_answer) == 0
    return False


def calculate_grade(accuracy: float) -> str:
    for threshold, letter in GRADE_BANDS:
        if accuracy >= threshold:
            return letter
    return "F"


class ScoringService:
    """
    Service for scoring an attempt against a paper's answer key

    Scoring is pure: it never reads the clock, every timing input comes from
    the recorded start/end times and per-answer time_spent.
    """

    def check_answer(self, question: Dict[str, Any], user_answer: Any) -> bool:
        """
        Check a single answer against the question's correct answer

        Args:
            question: Paper question dictionary
            user_answer: str for single_choice/fill_blank, list[str] for multiple_choice

        Returns:
            True when the answer earns full points
        """
        correct_answer = question.get("correctAnswer")
        if correct_answer is None or is_blank(user_answer):
            return False

        q_type = question.get("type")

        if q_type == SINGLE_CHOICE:
            if isinstance(correct_answer, list):
                if len(correct_answer) != 1:
                    return False
                correct_answer = correct_answer[0]
            return isinstance(user_answer, str) and user_answer == str(correct_answer)

        if q_type == MULTIPLE_CHOICE:
            if not isinstance(user_answer, list) or not isinstance(correct_answer, list):
                return False
            return set(map(str, user_answer)) == set(map(str, correct_answer))

        if q_type == FILL_BLANK:
            accepted = correct_answer if isinstance(correct_answer, list) else [correct_answer]
            if isinstance(user_answer, list):
                user_answer = "".join(map(str, user_answer))
            if not isinstance(user_answer, str):
                return False
            given = normalize_blank(user_answer)
            return any(given == normalize_blank(str(candidate)) for candidate in accepted)

        logger.warning(f"Unknown question type '{q_type}' for question {question.get('questionId')}")
        return False

    def score(
        self,
        answers: Iterable[AnswerEntry],
        questions: List[Dict[str, Any]],
        *,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        passing_score: float,
        exam_record_id: Optional[str] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        default_points: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Score a complete attempt

        Args:
            answers: Ledger entries; entries for questions not on the paper are ignored
            questions: Paper questions in presentation order
            start_time: Attempt start
            end_time: Attempt end (submission instant or deadline on expiry)
            passing_score: Raw score needed to pass
            default_points: Points for questions without their own (DEFAULT_POINTS setting when omitted)

        Returns:
            ScoreResult dictionary
        """
        if default_points is None:
            default_points = settings.DEFAULT_POINTS

        by_question = {str(entry.question_id): entry for entry in answers}

        breakdown = []
        total_score = 0.0
        total_points = 0.0
        correct_count = 0
        answered_times: List[int] = []
        answered_count = 0

        for question in questions:
            q_id = str(question.get("questionId"))
            points = question.get("points")
            points = float(default_points if points is None else points)
            total_points += points

            entry = by_question.get(q_id)
            answered = entry is not None and not is_blank(entry.user_answer)

            if answered:
                answered_count += 1
                is_correct = self.check_answer(question, entry.user_answer)
                if entry.time_spent > 0:
                    answered_times.append(entry.time_spent)
            else:
                is_correct = False

            points_awarded = points if is_correct else 0.0
            if is_correct:
                correct_count += 1
            total_score += points_awarded

            breakdown.append({
                "questionId": q_id,
                "type": question.get("type"),
                "userAnswer": entry.user_answer if entry is not None else None,
                "correctAnswer": question.get("correctAnswer"),
                "isCorrect": is_correct,
                "pointsAwarded": points_awarded,
                "points": points,
                "timeSpent": entry.time_spent if entry is not None else 0,
            })

        orphaned = set(by_question) - {str(q.get("questionId")) for q in questions}
        if orphaned:
            logger.info(f"Ignoring {len(orphaned)} orphaned answer(s) for record {exam_record_id}")

        total_questions = len(questions)
        accuracy = (correct_count / total_questions * 100) if total_questions > 0 else 0.0
        accuracy = round(accuracy, 2)
        total_score = round(total_score, 2)

        average_time, fastest, slowest = self._timing_statistics(answered_times)

        result = {
            "examRecordId": exam_record_id,
            "sessionId": session_id,
            "userId": user_id,
            "totalQuestions": total_questions,
            "answeredQuestions": answered_count,
            "correctAnswers": correct_count,
            "score": total_score,
            "totalPoints": round(total_points, 2),
            "accuracy": accuracy,
            "timeUsed": self._time_used(start_time, end_time),
            "isPassed": total_score >= passing_score,
            "grade": calculate_grade(accuracy),
            "answers": breakdown,
            "statistics": {
                "averageTimePerQuestion": average_time,
                "fastestQuestion": fastest,
                "slowestQuestion": slowest,
                "skippedQuestions": total_questions - answered_count,
            },
        }

        logger.info(
            f"Attempt scored: record={exam_record_id}, score={total_score}/{total_points}, "
            f"accuracy={accuracy}%, grade={result['grade']}"
        )

        return result

    def _timing_statistics(self, times: List[int]) -> Tuple[int, int, int]:
        """Average/fastest/slowest over answered questions with recorded time"""
        if not times:
            return 0, 0, 0
        return round(sum(times) / len(times)), min(times), max(times)

    def _time_used(self, start_time: Optional[datetime], end_time: Optional[datetime]) -> int:
        if start_time is None or end_time is None:
            return 0
        return max(0, int((end_time - start_time).total_seconds()))


# Global instance
scoring_service = ScoringService()
