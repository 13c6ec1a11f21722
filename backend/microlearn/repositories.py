"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (lessons,
questions, progress, streaks, receipts, profiles, bookmarks,
assessments). Content, profile and bookmark repositories commit their
own writes. Progress, streak and receipt repositories only flush: the
progress tracker owns their transaction so a completion commits or
rolls back as one unit.
"""

from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from . import models


class LessonRepository:
    """Query and create `Lesson` rows together with their questions."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, lesson_id: str) -> Optional[models.Lesson]:
        """Fetch a lesson by id, published or not."""
        return self.session.get(models.Lesson, lesson_id)

    def get_published(self, lesson_id: str) -> Optional[models.Lesson]:
        """Fetch a lesson by id, hiding unpublished drafts."""
        lesson = self.get(lesson_id)
        if lesson is None or not lesson.is_published:
            return None
        return lesson

    def list_published(
        self,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[models.Lesson]:
        """Return published lessons in authoring order with optional filters."""
        stmt = select(models.Lesson).where(models.Lesson.is_published == True)  # noqa: E712
        if category:
            stmt = stmt.where(models.Lesson.category == category)
        if difficulty:
            stmt = stmt.where(models.Lesson.difficulty == difficulty)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(or_(
                func.lower(models.Lesson.title).like(pattern),
                func.lower(models.Lesson.description).like(pattern),
            ))
        stmt = stmt.order_by(models.Lesson.order_index, models.Lesson.title)
        return list(self.session.exec(stmt).all())

    def get_many(self, lesson_ids: Iterable[str]) -> Dict[str, models.Lesson]:
        """Return a mapping of id to lesson for the ids that exist."""
        ids = list(set(lesson_ids))
        if not ids:
            return {}
        stmt = select(models.Lesson).where(models.Lesson.id.in_(ids))
        return {lesson.id: lesson for lesson in self.session.exec(stmt).all()}

    def create(self, lesson: models.Lesson, questions: List[models.QuizQuestion]) -> models.Lesson:
        """Create a lesson and attach provided questions in one commit."""
        self.session.add(lesson)
        self.session.flush()
        for q in questions:
            q.lesson_id = lesson.id
            self.session.add(q)
        self.session.commit()
        self.session.refresh(lesson)
        return lesson


class QuestionRepository:
    """Query helpers for `QuizQuestion` records."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, question_id: str) -> Optional[models.QuizQuestion]:
        """Fetch a question by id, including its correct answer index."""
        return self.session.get(models.QuizQuestion, question_id)

    def list_for_lesson(self, lesson_id: str) -> List[models.QuizQuestion]:
        """List questions of `lesson_id` in quiz order."""
        stmt = (
            select(models.QuizQuestion)
            .where(models.QuizQuestion.lesson_id == lesson_id)
            .order_by(models.QuizQuestion.order_index)
        )
        return list(self.session.exec(stmt).all())

    def count_for_lesson(self, lesson_id: str) -> int:
        stmt = select(func.count()).select_from(models.QuizQuestion).where(
            models.QuizQuestion.lesson_id == lesson_id
        )
        return int(self.session.exec(stmt).one())


class ProgressRepository:
    """Access to `LessonProgress` rows. Callers own the transaction."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, lesson_id: str) -> Optional[models.LessonProgress]:
        """Return the progress row for the pair or `None` (not started)."""
        stmt = select(models.LessonProgress).where(
            models.LessonProgress.user_id == user_id,
            models.LessonProgress.lesson_id == lesson_id,
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> List[models.LessonProgress]:
        """Return every progress row of a user, most recently opened first."""
        stmt = select(models.LessonProgress).where(models.LessonProgress.user_id == user_id)
        if status:
            stmt = stmt.where(models.LessonProgress.status == status)
        stmt = stmt.order_by(models.LessonProgress.last_accessed_at.desc())
        return list(self.session.exec(stmt).all())

    def save(self, progress: models.LessonProgress) -> models.LessonProgress:
        self.session.add(progress)
        self.session.flush()
        return progress


class StreakRepository:
    """Access to `UserStreak` rows with a version-guarded update."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> Optional[models.UserStreak]:
        return self.session.get(models.UserStreak, user_id)

    def insert(self, streak: models.UserStreak) -> models.UserStreak:
        """Stage a new streak row; a concurrent insert surfaces as IntegrityError."""
        self.session.add(streak)
        self.session.flush()
        return streak

    def compare_and_set(self, user_id: str, expected_version: int, **values) -> bool:
        """Write `values` only if the row still carries `expected_version`.

        Returns False when another writer got there first. The version is
        bumped as part of the same statement.
        """
        stmt = (
            update(models.UserStreak)
            .where(
                models.UserStreak.user_id == user_id,
                models.UserStreak.version == expected_version,
            )
            .values(version=expected_version + 1, **values)
        )
        result = self.session.connection().execute(stmt)
        cached = self.session.get(models.UserStreak, user_id)
        if cached is not None:
            self.session.expire(cached)
        return result.rowcount == 1


class ReceiptRepository:
    """Idempotency receipts for applied completions."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, lesson_id: str, attempt_id: str) -> Optional[models.CompletionReceipt]:
        stmt = select(models.CompletionReceipt).where(
            models.CompletionReceipt.user_id == user_id,
            models.CompletionReceipt.lesson_id == lesson_id,
            models.CompletionReceipt.attempt_id == attempt_id,
        )
        return self.session.exec(stmt).first()

    def insert(self, receipt: models.CompletionReceipt) -> models.CompletionReceipt:
        """Stage a receipt; a duplicate key surfaces as IntegrityError on flush."""
        self.session.add(receipt)
        self.session.flush()
        return receipt


class ProfileRepository:
    """Upsert and read `Profile` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> Optional[models.Profile]:
        return self.session.get(models.Profile, user_id)

    def upsert(self, profile: models.Profile) -> models.Profile:
        """Insert or overwrite the profile of `profile.user_id`."""
        existing = self.get(profile.user_id)
        if existing:
            existing.full_name = profile.full_name
            existing.job_title = profile.job_title
            existing.company = profile.company
            existing.updated_at = profile.updated_at
            self.session.add(existing)
            self.session.commit()
            return existing
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile


class BookmarkRepository:
    """Add, remove and list lesson bookmarks."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str, lesson_id: str) -> Optional[models.LessonBookmark]:
        stmt = select(models.LessonBookmark).where(
            models.LessonBookmark.user_id == user_id,
            models.LessonBookmark.lesson_id == lesson_id,
        )
        return self.session.exec(stmt).first()

    def add(self, user_id: str, lesson_id: str) -> models.LessonBookmark:
        """Create a bookmark, returning the existing one if already saved."""
        existing = self.get(user_id, lesson_id)
        if existing:
            return existing
        bookmark = models.LessonBookmark(user_id=user_id, lesson_id=lesson_id)
        self.session.add(bookmark)
        self.session.commit()
        self.session.refresh(bookmark)
        return bookmark

    def remove(self, user_id: str, lesson_id: str) -> bool:
        """Delete a bookmark; returns False when there was none."""
        existing = self.get(user_id, lesson_id)
        if not existing:
            return False
        self.session.delete(existing)
        self.session.commit()
        return True

    def list_for_user(self, user_id: str) -> List[models.LessonBookmark]:
        stmt = (
            select(models.LessonBookmark)
            .where(models.LessonBookmark.user_id == user_id)
            .order_by(models.LessonBookmark.created_at.desc())
        )
        return list(self.session.exec(stmt).all())


class AssessmentRepository:
    """Append-only store of skill assessments."""
    def __init__(self, session: Session):
        self.session = session

    def add_many(self, rows: List[models.SkillAssessment]) -> List[models.SkillAssessment]:
        for row in rows:
            self.session.add(row)
        self.session.commit()
        for row in rows:
            self.session.refresh(row)
        return rows

    def latest_per_category(self, user_id: str) -> Dict[str, models.SkillAssessment]:
        """Return the most recent assessment of each category for a user."""
        stmt = (
            select(models.SkillAssessment)
            .where(models.SkillAssessment.user_id == user_id)
            .order_by(models.SkillAssessment.completed_at.desc(), models.SkillAssessment.id.desc())
        )
        latest: Dict[str, models.SkillAssessment] = {}
        for row in self.session.exec(stmt).all():
            latest.setdefault(row.category, row)
        return latest
