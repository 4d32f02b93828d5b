from datetime import datetime, timedelta, timezone

import pytest

from examcore.errors import Expired, NotStartedYet, SessionUnavailable
from examcore.models import ExamSession, SessionStatus, SessionType
from examcore.services.window_validator import (
    EXPIRED, NOT_STARTED_YET, SESSION_UNAVAILABLE, can_join, can_start, effective_window,
)

START = datetime(2025, 3, 1, 9, 0, 0)
END = datetime(2025, 3, 1, 11, 0, 0)


def scheduled(status=SessionStatus.PUBLISHED.value, start=START, end=END):
    return ExamSession(
        name="Scheduled", type=SessionType.SCHEDULED.value, status=status,
        duration=60, start_time=start, end_time=end, settings={},
    )


def on_demand(available_from=START, available_until=None):
    return ExamSession(
        name="On demand", type=SessionType.ON_DEMAND.value, status=SessionStatus.ACTIVE.value,
        duration=60, available_from=available_from, available_until=available_until, settings={},
    )


def test_before_start_is_not_started_yet():
    check = can_start(scheduled(), START - timedelta(seconds=1))
    assert not check.ok
    assert check.reason == NOT_STARTED_YET
    with pytest.raises(NotStartedYet):
        check.raise_if_denied()


def test_start_instant_is_inclusive():
    assert can_start(scheduled(), START).ok
    assert can_join(scheduled(), START).ok


def test_end_instant_is_still_open():
    assert can_start(scheduled(), END).ok


def test_after_end_is_expired():
    check = can_join(scheduled(), END + timedelta(seconds=1))
    assert check.reason == EXPIRED
    with pytest.raises(Expired):
        check.raise_if_denied()


def test_completed_session_is_expired_even_inside_window():
    check = can_start(scheduled(status=SessionStatus.COMPLETED.value), START + timedelta(minutes=5))
    assert check.reason == EXPIRED


@pytest.mark.parametrize("status", [SessionStatus.DRAFT.value, SessionStatus.CANCELLED.value])
def test_unpublished_session_is_unavailable(status):
    check = can_start(scheduled(status=status), START + timedelta(minutes=5))
    assert check.reason == SESSION_UNAVAILABLE
    with pytest.raises(SessionUnavailable):
        check.raise_if_denied()


def test_on_demand_without_end_never_expires():
    session = on_demand()
    assert effective_window(session) == (START, None)
    assert can_start(session, START + timedelta(days=365)).ok


def test_on_demand_uses_availability_window():
    session = on_demand(available_until=END)
    assert can_start(session, START - timedelta(seconds=1)).reason == NOT_STARTED_YET
    assert can_start(session, END + timedelta(seconds=1)).reason == EXPIRED


def test_missing_start_time_is_unavailable():
    check = can_start(scheduled(start=None), START)
    assert check.reason == SESSION_UNAVAILABLE


def test_aware_now_is_compared_as_utc():
    # 10:00 at +02:00 is 08:00 UTC, an hour before the window opens
    now = datetime(2025, 3, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert can_start(scheduled(), now).reason == NOT_STARTED_YET
