import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session

os.environ.setdefault("DATABASE_URL", "sqlite://")

from core.config import settings  # noqa: E402
from core.database import build_engine, create_db_and_tables, get_session  # noqa: E402
from main import app  # noqa: E402
from models.models import (  # noqa: E402
    ClassSession,
    PlanOption,
    Student,
    TrainingClass,
)
from services.plan_service import select_plan  # noqa: E402

# 2030-01-07 is a Monday
WEEK_W = datetime(2030, 1, 7)


@pytest.fixture()
def engine():
    test_engine = build_engine("sqlite://")
    create_db_and_tables(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as db:
        yield db


@pytest.fixture()
def bearer():
    """Authorization headers for a token signed with the app secret."""

    def _headers(subject: str = "principal-1", role: str = "student", **claims) -> dict:
        claims = {"sub": subject, "role": role, **claims}
        token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def anon_client(engine):
    def _session_override():
        with Session(engine) as db:
            yield db

    app.dependency_overrides[get_session] = _session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def client(anon_client, bearer):
    """Client acting as an instructor."""
    anon_client.headers.update(bearer("instructor-1", role="instructor"))
    return anon_client


@pytest.fixture()
def make_student(session):
    counter = {"n": 0}

    def _make(name: str = None) -> Student:
        counter["n"] += 1
        student = Student(
            principal_id=f"principal-{counter['n']}",
            full_name=name or f"Student {counter['n']}",
            email=f"student{counter['n']}@example.com",
        )
        session.add(student)
        session.commit()
        session.refresh(student)
        return student

    return _make


@pytest.fixture()
def make_class(session):
    def _make(capacity: int = 10, title: str = "Cross Training") -> TrainingClass:
        training_class = TrainingClass(title=title, capacity=capacity, schedule=[])
        session.add(training_class)
        session.commit()
        session.refresh(training_class)
        return training_class

    return _make


@pytest.fixture()
def make_session(session):
    def _make(training_class: TrainingClass, start: datetime = None) -> ClassSession:
        start = start or WEEK_W + timedelta(hours=6)
        class_session = ClassSession(
            class_id=training_class.id,
            start_time=start,
            end_time=start + timedelta(hours=1),
            capacity=training_class.capacity,
            location="Main floor",
        )
        session.add(class_session)
        session.commit()
        session.refresh(class_session)
        return class_session

    return _make


@pytest.fixture()
def subscribe(session):
    """Put a student on a fresh plan option with ``weekly`` classes per week."""

    def _subscribe(student: Student, weekly: int = 2):
        option = PlanOption(name=f"{weekly}x per week", weekly_classes=weekly)
        session.add(option)
        session.commit()
        session.refresh(option)
        return select_plan(session, student.id, option.id)

    return _subscribe
