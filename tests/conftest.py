"""
Shared fixtures: in-memory database, fixed clock, tokens and seeded exams
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ["REDIS_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from examcore.database import Base, get_db
from examcore.main import app
from examcore.models import ExamSession, Paper, SessionStatus, SessionType
from examcore.utils.cache import preview_store
from examcore.utils.clock import get_now
from examcore.utils.rate_limiter import rate_limiter
from examcore.utils.security import ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER, create_token


NOW = datetime(2025, 3, 1, 9, 0, 0)

QUESTIONS = [
    {
        "questionId": "q1",
        "type": "single_choice",
        "content": "2 + 2 = ?",
        "options": [{"key": "A", "text": "4"}, {"key": "B", "text": "5"}],
        "correctAnswer": "A",
        "points": 5,
    },
    {
        "questionId": "q2",
        "type": "multiple_choice",
        "content": "Pick the primes",
        "options": [{"key": "A", "text": "2"}, {"key": "B", "text": "4"}, {"key": "C", "text": "5"}],
        "correctAnswer": ["A", "C"],
        "points": 5,
    },
    {
        "questionId": "q3",
        "type": "fill_blank",
        "content": "Capital of France",
        "correctAnswer": "Paris",
        "points": 5,
    },
]

CORRECT_ANSWERS = {"q1": "A", "q2": ["C", "A"], "q3": "  Paris "}


class FixedClock:
    """Mutable "now" shared by the app and the tests"""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def client(session_factory, clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    rate_limiter.minute_tracker.clear()
    rate_limiter.hour_tracker.clear()
    preview_store.memory.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_paper(db):
    def _make(questions=None, title="Arithmetic basics"):
        paper = Paper(title=title, questions=questions if questions is not None else QUESTIONS)
        db.add(paper)
        db.commit()
        db.refresh(paper)
        return paper

    return _make


@pytest.fixture
def make_session(db, make_paper):
    def _make(paper=None, settings=None, **overrides):
        paper = paper or make_paper()
        values = {
            "name": "Midterm",
            "paper_id": paper.id,
            "type": SessionType.SCHEDULED.value,
            "status": SessionStatus.PUBLISHED.value,
            "duration": 30,
            "start_time": NOW - timedelta(hours=1),
            "end_time": NOW + timedelta(hours=2),
            "settings": settings if settings is not None else {"passingScore": 10, "maxAttempts": 1},
        }
        values.update(overrides)
        session = ExamSession(**values)
        db.add(session)
        db.commit()
        db.refresh(session)
        return session

    return _make


@pytest.fixture
def student_id():
    return uuid.uuid4()


def auth_headers(user_id, role=ROLE_STUDENT):
    return {"Authorization": f"Bearer {create_token(user_id, role, username='tester')}"}


@pytest.fixture
def student_headers(student_id):
    return auth_headers(student_id)


@pytest.fixture
def teacher_headers():
    return auth_headers(uuid.uuid4(), ROLE_TEACHER)


@pytest.fixture
def admin_headers():
    return auth_headers(uuid.uuid4(), ROLE_ADMIN)
