"""
Pytest configuration and shared fixtures.

The engine runs against an in-memory SQLite database; tables are recreated
for every test. Time and notifications are injected through FastAPI
dependency overrides.
"""
import os

# Must be set before quiz_engine.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-for-quiz-engine-tests"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from quiz_engine.main import app
from quiz_engine.core.dependencies import get_clock, get_notification_sink
from quiz_engine.core.security import SecurityManager, ROLE_INSTRUCTOR, ROLE_STUDENT
from quiz_engine.database.base import Base
from quiz_engine.database.session import engine, SessionLocal
from quiz_engine.services.membership_service import DatabaseMembershipResolver

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=7)
T2 = T1 + timedelta(days=2)

INSTRUCTOR_ID = "instructor-1"
OTHER_INSTRUCTOR_ID = "instructor-2"
STUDENT_ID = "student-1"
OTHER_STUDENT_ID = "student-2"
GROUP_ID = "group-a"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Pure component tests")
    config.addinivalue_line("markers", "integration: HTTP tests against the FastAPI app")


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class FixedClock:
    """Controllable clock handed to the services through get_clock"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class RecordingSink:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, notification) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append(notification)

    def of_type(self, type_: str):
        return [n for n in self.sent if n.type == type_]


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FixedClock(T0 + timedelta(days=1))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def client(clock, sink):
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_sink] = lambda: sink
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: str, role: str) -> dict:
    token = SecurityManager.create_access_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def instructor():
    return auth_headers(INSTRUCTOR_ID, ROLE_INSTRUCTOR)


@pytest.fixture
def other_instructor():
    return auth_headers(OTHER_INSTRUCTOR_ID, ROLE_INSTRUCTOR)


@pytest.fixture
def student():
    return auth_headers(STUDENT_ID, ROLE_STUDENT)


@pytest.fixture
def other_student():
    return auth_headers(OTHER_STUDENT_ID, ROLE_STUDENT)


@pytest.fixture
def enroll():
    def _enroll(student_id: str = STUDENT_ID, group_id: str = GROUP_ID):
        db = SessionLocal()
        try:
            DatabaseMembershipResolver(db).enroll(group_id, student_id)
            db.commit()
        finally:
            db.close()
    return _enroll


def mc_question(text="What is the capital of France?", points=2, correct=1, **extra):
    options = [
        {"optionText": label, "isCorrect": index == correct}
        for index, label in enumerate(["Berlin", "Paris", "Rome"])
    ]
    return {"questionText": text, "questionType": "multiple_choice", "points": points, "options": options, **extra}


def tf_question(text="The earth orbits the sun.", points=1, answer=True, **extra):
    return {
        "questionText": text,
        "questionType": "true_false",
        "points": points,
        "options": [
            {"optionText": "True", "isCorrect": answer},
            {"optionText": "False", "isCorrect": not answer},
        ],
        **extra,
    }


def essay_question(text="Explain the water cycle.", points=5, **extra):
    return {"questionText": text, "questionType": "essay", "points": points, **extra}


def quiz_payload(**overrides):
    payload = {
        "title": "Geography basics",
        "description": "Week one check-in",
        "courseId": "course-101",
        "startDate": iso(T0),
        "dueDate": iso(T1),
        "lateDueDate": iso(T2),
        "allowLateSubmission": True,
        "maxAttempts": 2,
        "groupIds": [GROUP_ID],
        "questions": [mc_question(), tf_question(), essay_question()],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_quiz(client, instructor):
    def _create(**overrides):
        response = client.post("/api/v1/quizzes", json=quiz_payload(**overrides), headers=instructor)
        assert response.status_code == 201, response.text
        return response.json()
    return _create


def answers_for(quiz: dict, mc="correct", tf="correct", essay="Evaporation, condensation, precipitation."):
    """Build a submit payload from an instructor quiz detail"""
    answers = []
    for question in quiz["questions"]:
        qtype = question["questionType"]
        if qtype == "essay":
            answers.append({"questionId": question["id"], "answerText": essay})
            continue
        choice = mc if qtype == "multiple_choice" else tf
        correct = next(o["id"] for o in question["options"] if o["isCorrect"])
        wrong = next(o["id"] for o in question["options"] if not o["isCorrect"])
        answers.append({"questionId": question["id"], "selectedOptionId": correct if choice == "correct" else wrong})
    return {"answers": answers}
