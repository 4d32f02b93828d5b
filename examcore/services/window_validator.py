"""
Exam window validation

Pure functions deciding whether a session can be joined or started at a given
instant. Lower bounds are inclusive; a session is only expired strictly after
its end instant.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from examcore.errors import Expired, NotStartedYet, SessionUnavailable
from examcore.models.exam_session import SessionStatus
from examcore.utils.clock import to_naive_utc


NOT_STARTED_YET = "NOT_STARTED_YET"
EXPIRED = "EXPIRED"
SESSION_UNAVAILABLE = "SESSION_UNAVAILABLE"


@dataclass(frozen=True)
class WindowCheck:
    ok: bool
    reason: Optional[str] = None
    message: Optional[str] = None

    def raise_if_denied(self) -> None:
        if self.ok:
            return
        if self.reason == NOT_STARTED_YET:
            raise NotStartedYet(self.message)
        if self.reason == EXPIRED:
            raise Expired(self.message)
        raise SessionUnavailable(self.message)


ALLOWED = WindowCheck(ok=True)


def effective_window(session) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Return (opens_at, closes_at) for a session

    closes_at is None for on-demand sessions without an availability end.
    """
    if session.is_on_demand:
        return to_naive_utc(session.available_from), to_naive_utc(session.available_until)
    return to_naive_utc(session.start_time), to_naive_utc(session.end_time)


def _check(session, now: datetime) -> WindowCheck:
    now = to_naive_utc(now)
    opens_at, closes_at = effective_window(session)

    if session.status == SessionStatus.COMPLETED.value:
        return WindowCheck(False, EXPIRED, "Exam has ended")
    if session.status not in (SessionStatus.PUBLISHED.value, SessionStatus.ACTIVE.value):
        return WindowCheck(False, SESSION_UNAVAILABLE, "Exam is not open")

    if opens_at is None:
        return WindowCheck(False, SESSION_UNAVAILABLE, "Exam has no start time configured")
    if now < opens_at:
        return WindowCheck(False, NOT_STARTED_YET, f"Exam opens at {opens_at.isoformat()}")
    if closes_at is not None and now > closes_at:
        return WindowCheck(False, EXPIRED, f"Exam closed at {closes_at.isoformat()}")

    return ALLOWED


def can_join(session, now: datetime) -> WindowCheck:
    """Whether a student may join the session at `now`"""
    return _check(session, now)


def can_start(session, now: datetime) -> WindowCheck:
    """Whether a student may open (or resume) an attempt at `now`"""
    return _check(session, now)
