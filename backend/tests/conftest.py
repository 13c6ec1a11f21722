import os
import tempfile
import uuid
from pathlib import Path

# settings are read at import time, so point the app at a throwaway database first
_TMP = Path(tempfile.mkdtemp(prefix="microlearn-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RECOMMENDER_API_KEY"] = ""

import jwt
import pytest
from sqlmodel import Session

from microlearn import models
from microlearn.database import create_db_and_tables, engine


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Ensure the tables exist in the fresh SQLite database for tests."""
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def user_id():
    return f"user-{uuid.uuid4().hex[:8]}"


def make_token(sub, secret="test-secret", **claims):
    payload = {"role": "authenticated"}
    if sub is not None:
        payload["sub"] = sub
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def headers(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def make_lesson(session):
    """Create a published lesson; `questions` is a list of (options, correct_index, explanation)."""
    def _make(questions=(), category="leadership", title=None, **fields):
        lesson = models.Lesson(
            title=title or f"Lesson {uuid.uuid4().hex[:6]}",
            category=category,
            **fields,
        )
        session.add(lesson)
        session.flush()
        for order, (options, correct, explanation) in enumerate(questions):
            session.add(models.QuizQuestion(
                lesson_id=lesson.id,
                question_text=f"Question {order + 1}?",
                options=list(options),
                correct_answer=correct,
                explanation=explanation,
                order_index=order,
            ))
        session.commit()
        session.refresh(lesson)
        return lesson
    return _make
