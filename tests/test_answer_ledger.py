import uuid
from datetime import timedelta

import pytest

from examcore.services.answer_ledger import AnswerLedger, merge_answer
from examcore.services.attempt_service import attempt_service
from examcore.services.catalog import catalog
from conftest import NOW


@pytest.fixture
def ledger():
    return AnswerLedger()


@pytest.fixture
def record(db, make_session):
    session = make_session()
    paper = catalog.get_paper(db, session.paper_id)
    record, _ = attempt_service.start(db, session, paper, uuid.uuid4(), NOW)
    return record


def test_merge_answer_accumulates_time():
    assert merge_answer(None, "A", 5) == ("A", 5)
    assert merge_answer(5, "B", 7) == ("B", 12)


def test_merge_answer_ignores_negative_time():
    assert merge_answer(4, "A", -3) == ("A", 4)


def test_last_answer_wins_and_time_accumulates(db, ledger, record):
    ledger.upsert(db, record, "q1", "A", 5, NOW)
    ledger.upsert(db, record, "q1", "B", 7, NOW + timedelta(seconds=7))
    db.commit()

    rows = ledger.get_all(db, record.id)
    assert len(rows) == 1
    assert rows[0].user_answer == "B"
    assert rows[0].time_spent == 12
    assert rows[0].submitted_at == NOW + timedelta(seconds=7)


def test_upsert_touches_record(db, ledger, record):
    later = NOW + timedelta(minutes=3)
    ledger.upsert(db, record, "q2", ["A"], 0, later)
    db.commit()
    assert record.last_active_time == later


def test_duplicate_question_in_one_batch(db, ledger, record):
    ledger.upsert_many(db, record, [
        {"questionId": "q3", "answer": "Lyon", "timeSpent": 3},
        {"questionId": "q3", "answer": "Paris", "timeSpent": 4},
    ], NOW)
    db.commit()

    entries = ledger.entries(db, record.id)
    assert len(entries) == 1
    assert entries[0].user_answer == "Paris"
    assert entries[0].time_spent == 7


def test_answered_count_skips_blank(db, ledger, record):
    ledger.upsert_many(db, record, [
        {"questionId": "q1", "answer": "A"},
        {"questionId": "q2", "answer": []},
        {"questionId": "q3", "answer": "  "},
    ], NOW)
    db.commit()
    assert ledger.answered_count(db, record.id) == 1
