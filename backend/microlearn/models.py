"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table. Lessons and quiz questions are authored
content and read-only at runtime; progress, streak and receipt rows are
written only by the progress tracker.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class ProgressStatus(str, Enum):
    """Lifecycle of a (user, lesson) pair.

    `NOT_STARTED` is never stored; it is the state of a pair without a
    `LessonProgress` row.
    """
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SkillLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Lesson(SQLModel, table=True):
    """A bite-sized lesson with optional embedded quiz questions."""
    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    description: Optional[str] = None
    category: str = Field(index=True)
    difficulty: str = Field(default=SkillLevel.BEGINNER.value, index=True)
    duration_minutes: int = 5
    order_index: int = Field(default=0, index=True)
    is_published: bool = True
    scenario_text: Optional[str] = None
    content: dict = Field(default_factory=dict, sa_column=Column(JSON))


class QuizQuestion(SQLModel, table=True):
    """A multiple-choice question belonging to a lesson.

    `correct_answer` is the index into `options` and must never be
    serialized into a client-readable payload.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    lesson_id: str = Field(foreign_key="lesson.id", index=True)
    question_text: str
    options: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    correct_answer: int
    explanation: Optional[str] = None
    order_index: int = 0


class LessonProgress(SQLModel, table=True):
    """Per-user progress on one lesson.

    At most one row per (user, lesson). `score` stays null until the row
    reaches `completed`, and status never moves backwards.
    """
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_progress_user_lesson"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    lesson_id: str = Field(foreign_key="lesson.id", index=True)
    status: str = ProgressStatus.IN_PROGRESS.value
    score: Optional[int] = None
    completed_at: Optional[datetime] = None
    time_spent_seconds: int = 0
    started_at: datetime = Field(default_factory=_utcnow)
    last_accessed_at: datetime = Field(default_factory=_utcnow)
    attempt_id: str = Field(default_factory=new_id)
    completions: int = 0


class UserStreak(SQLModel, table=True):
    """Per-user streak aggregate.

    `version` is an optimistic concurrency token: every write bumps it and
    is conditioned on the value that was read.
    """
    user_id: str = Field(primary_key=True)
    current_streak: int = 0
    longest_streak: int = 0
    total_lessons_completed: int = 0
    last_activity_date: Optional[date] = None
    version: int = 0
    updated_at: datetime = Field(default_factory=_utcnow)


class CompletionReceipt(SQLModel, table=True):
    """Idempotency record for one applied lesson completion.

    The streak snapshot is stored so a replayed request returns the same
    response body without touching the aggregate again.
    """
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", "attempt_id", name="uq_receipt_attempt"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    lesson_id: str = Field(foreign_key="lesson.id")
    attempt_id: str
    score: int
    current_streak: int
    longest_streak: int
    total_lessons_completed: int
    created_at: datetime = Field(default_factory=_utcnow)


class Profile(SQLModel, table=True):
    """Display details for a user, keyed by identity-provider subject."""
    user_id: str = Field(primary_key=True)
    full_name: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class LessonBookmark(SQLModel, table=True):
    """A lesson saved for later by a user."""
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_bookmark_user_lesson"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    lesson_id: str = Field(foreign_key="lesson.id")
    created_at: datetime = Field(default_factory=_utcnow)


class SkillAssessment(SQLModel, table=True):
    """Self-assessed skill level for one category.

    Rows are append-only; the latest row per category is the current level.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    category: str = Field(index=True)
    level: str
    confidence_score: int
    responses: dict = Field(default_factory=dict, sa_column=Column(JSON))
    completed_at: datetime = Field(default_factory=_utcnow)
