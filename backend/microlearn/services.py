"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and domain rules. The two services with real invariants are
`AnswerValidator` (server-side quiz grading behind the trust boundary)
and `ProgressTracker` (the lesson progress state machine and the streak
aggregate). The rest are thin: they validate input, call repositories
and shape response payloads.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import BadRequest, Conflict, Internal, NotFound
from .utils import recommender
from .utils.lesson_parsers import parse_file_to_lessons

validator_log = logging.getLogger("microlearn.validator")
tracker_log = logging.getLogger("microlearn.tracker")
recommender_log = logging.getLogger("microlearn.recommender")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Verdict:
    is_correct: bool
    explanation: Optional[str]

    def to_dict(self) -> dict:
        return {"isCorrect": self.is_correct, "explanation": self.explanation}


class AnswerValidator:
    """Decide quiz answer correctness from data the client never sees."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)

    def validate(self, question_id: str, selected_answer: int) -> Verdict:
        """Grade one answer submission.

        The verdict is a pure function of the stored question and the
        input; nothing is persisted. Raises `BadRequest` for a negative or
        out-of-range index, `NotFound` for an unknown question and
        `Internal` if the store cannot be read.
        """
        if isinstance(selected_answer, bool) or not isinstance(selected_answer, int) or selected_answer < 0:
            raise BadRequest("selectedAnswer must be a non-negative integer")
        try:
            question = self.q_repo.get(question_id)
        except SQLAlchemyError:
            validator_log.exception("question lookup failed for %s", question_id)
            raise Internal("could not validate answer")
        if question is None:
            raise NotFound("Question not found")
        if selected_answer >= len(question.options):
            raise BadRequest("selectedAnswer is out of range")
        is_correct = selected_answer == question.correct_answer
        validator_log.info("answer for question %s: %s", question_id, "correct" if is_correct else "incorrect")
        return Verdict(is_correct=is_correct, explanation=question.explanation)


@dataclass(frozen=True)
class StreakSnapshot:
    current_streak: int
    longest_streak: int
    total_lessons_completed: int
    last_activity_date: Optional[date]


def activity_date(now: datetime, utc_offset_minutes: int) -> date:
    """Calendar date of `now` as seen by a caller `utc_offset_minutes` east of UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now.astimezone(timezone.utc) + timedelta(minutes=utc_offset_minutes)).date()


def advance_streak(previous: Optional[StreakSnapshot], today: date) -> StreakSnapshot:
    """Apply one lesson completion on `today` to a streak.

    A completion the day after the last activity extends the streak, a
    second completion on the same day leaves it alone, and anything else
    (a gap, or no recorded activity) restarts it at 1. The total always
    grows by one and the longest streak never drops.
    """
    if previous is None:
        return StreakSnapshot(1, 1, 1, today)
    last = previous.last_activity_date
    if last is not None and last == today - timedelta(days=1):
        current = previous.current_streak + 1
    elif last is not None and last == today:
        current = previous.current_streak
    else:
        current = 1
    return StreakSnapshot(
        current_streak=current,
        longest_streak=max(previous.longest_streak, current),
        total_lessons_completed=previous.total_lessons_completed + 1,
        last_activity_date=today,
    )


@dataclass(frozen=True)
class ProgressState:
    """Tagged progress of a (user, lesson) pair; `row` is None when not started."""
    lesson_id: str
    state: models.ProgressStatus
    row: Optional[models.LessonProgress] = None

    @classmethod
    def of(cls, lesson_id: str, row: Optional[models.LessonProgress]) -> "ProgressState":
        if row is None:
            return cls(lesson_id, models.ProgressStatus.NOT_STARTED)
        return cls(lesson_id, models.ProgressStatus(row.status), row)

    def to_dict(self) -> dict:
        out = {"lessonId": self.lesson_id, "status": self.state.value}
        if self.row is not None:
            out.update({
                "score": self.row.score,
                "completedAt": _iso(self.row.completed_at),
                "timeSpentSeconds": self.row.time_spent_seconds,
                "lastAccessedAt": _iso(self.row.last_accessed_at),
                "completions": self.row.completions,
            })
        return out


@dataclass(frozen=True)
class StreakView:
    """Read model of a user's streak; `exists` is False before the first completion."""
    exists: bool
    current_streak: int = 0
    longest_streak: int = 0
    total_lessons_completed: int = 0
    last_activity_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "exists": self.exists,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "totalCompleted": self.total_lessons_completed,
            "lastActivityDate": self.last_activity_date.isoformat() if self.last_activity_date else None,
        }


@dataclass(frozen=True)
class CompletionResult:
    score: int
    current_streak: int
    longest_streak: int
    total_lessons_completed: int
    replayed: bool = False

    @classmethod
    def from_receipt(cls, receipt: models.CompletionReceipt, replayed: bool) -> "CompletionResult":
        return cls(
            score=receipt.score,
            current_streak=receipt.current_streak,
            longest_streak=receipt.longest_streak,
            total_lessons_completed=receipt.total_lessons_completed,
            replayed=replayed,
        )

    def to_dict(self) -> dict:
        return {
            "status": models.ProgressStatus.COMPLETED.value,
            "score": self.score,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "totalCompleted": self.total_lessons_completed,
            "replayed": self.replayed,
        }


class _StaleStreak(Exception):
    """The streak row changed between read and conditional write."""


class ProgressTracker:
    """Lesson progress state machine and streak aggregate.

    Every write path commits or rolls back as a single transaction on
    the tracker's session.
    """
    def __init__(self, session: Session, clock: Clock = utcnow, max_retries: Optional[int] = None):
        self.session = session
        self.clock = clock
        self.max_retries = max_retries or settings.COMPLETE_MAX_RETRIES
        self.lesson_repo = repositories.LessonRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.progress_repo = repositories.ProgressRepository(session)
        self.streak_repo = repositories.StreakRepository(session)
        self.receipt_repo = repositories.ReceiptRepository(session)

    def get_progress(self, user_id: str, lesson_id: str) -> ProgressState:
        return ProgressState.of(lesson_id, self.progress_repo.get(user_id, lesson_id))

    def list_progress(self, user_id: str, status: Optional[str] = None) -> List[ProgressState]:
        return [ProgressState.of(row.lesson_id, row) for row in self.progress_repo.list_for_user(user_id, status)]

    def get_streak(self, user_id: str) -> StreakView:
        row = self.streak_repo.get(user_id)
        if row is None:
            return StreakView(exists=False)
        return StreakView(
            exists=True,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            total_lessons_completed=row.total_lessons_completed,
            last_activity_date=row.last_activity_date,
        )

    def begin(self, user_id: str, lesson_id: str) -> models.LessonProgress:
        """Record that a user opened a lesson.

        Creates the row as `in_progress` on first open. Later opens only
        refresh `last_accessed_at` and issue a new attempt id; a completed
        lesson stays completed with its score.
        """
        if self._require_lesson(lesson_id) is None:
            raise NotFound("Lesson not found")
        now = self.clock()
        for attempt in (1, 2):
            try:
                row = self.progress_repo.get(user_id, lesson_id)
                if row is None:
                    row = models.LessonProgress(
                        user_id=user_id,
                        lesson_id=lesson_id,
                        status=models.ProgressStatus.IN_PROGRESS.value,
                        started_at=now,
                        last_accessed_at=now,
                    )
                else:
                    row.last_accessed_at = now
                    row.attempt_id = models.new_id()
                self.progress_repo.save(row)
                self.session.commit()
                break
            except IntegrityError:
                # another tab inserted the row first; the second pass refreshes it
                self.session.rollback()
                if attempt == 2:
                    tracker_log.exception("begin raced twice for user=%s lesson=%s", user_id, lesson_id)
                    raise Internal("could not record lesson start")
            except SQLAlchemyError:
                self.session.rollback()
                tracker_log.exception("begin failed for user=%s lesson=%s", user_id, lesson_id)
                raise Internal("could not record lesson start")
        self.session.refresh(row)
        tracker_log.info("lesson begun user=%s lesson=%s status=%s", user_id, lesson_id, row.status)
        return row

    def complete(
        self,
        user_id: str,
        lesson_id: str,
        score: int,
        time_spent_seconds: int,
        attempt_id: Optional[str] = None,
        utc_offset_minutes: Optional[int] = None,
    ) -> CompletionResult:
        """Complete a lesson attempt and update the user's streak.

        Progress, streak and the idempotency receipt are written in one
        transaction. Re-submitting the same attempt returns the stored
        result without counting it twice. Concurrent writers are detected
        through the streak version and the receipt key; the loser is
        retried and, if retries run out, `Conflict` is raised.
        """
        if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
            raise BadRequest("score must be an integer between 0 and 100")
        if isinstance(time_spent_seconds, bool) or not isinstance(time_spent_seconds, int) or time_spent_seconds < 0:
            raise BadRequest("timeSpentSeconds must be a non-negative integer")
        offset = settings.STREAK_UTC_OFFSET_MINUTES if utc_offset_minutes is None else utc_offset_minutes
        if not -840 <= offset <= 840:
            raise BadRequest("utcOffsetMinutes must be within -840..840")
        if self._require_lesson(lesson_id) is None:
            raise NotFound("Lesson not found")

        for attempt in range(1, self.max_retries + 1):
            try:
                return self._complete_once(user_id, lesson_id, score, time_spent_seconds, attempt_id, offset)
            except (IntegrityError, _StaleStreak) as exc:
                self.session.rollback()
                tracker_log.warning(
                    "completion race user=%s lesson=%s try=%d: %s",
                    user_id, lesson_id, attempt, type(exc).__name__,
                )
            except SQLAlchemyError:
                self.session.rollback()
                tracker_log.exception("completion failed user=%s lesson=%s", user_id, lesson_id)
                raise Internal("could not save lesson completion; safe to retry")
        raise Conflict("lesson completion conflicted with a concurrent update; retry")

    def _complete_once(self, user_id, lesson_id, score, time_spent_seconds, attempt_id, offset) -> CompletionResult:
        now = self.clock()
        today = activity_date(now, offset)

        row = self.progress_repo.get(user_id, lesson_id)
        if row is None:
            row = models.LessonProgress(
                user_id=user_id,
                lesson_id=lesson_id,
                started_at=now,
                last_accessed_at=now,
            )
            if attempt_id:
                row.attempt_id = attempt_id
            self.progress_repo.save(row)
        key = attempt_id or row.attempt_id

        receipt = self.receipt_repo.get(user_id, lesson_id, key)
        if receipt is not None:
            result = CompletionResult.from_receipt(receipt, replayed=True)
            self.session.rollback()
            tracker_log.info("completion replayed user=%s lesson=%s", user_id, lesson_id)
            return result

        if self.q_repo.count_for_lesson(lesson_id) == 0:
            score = 100

        streak_row = self.streak_repo.get(user_id)
        if streak_row is None:
            snapshot = advance_streak(None, today)
            self.streak_repo.insert(models.UserStreak(
                user_id=user_id,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                total_lessons_completed=snapshot.total_lessons_completed,
                last_activity_date=snapshot.last_activity_date,
                updated_at=now,
            ))
        else:
            previous = StreakSnapshot(
                streak_row.current_streak,
                streak_row.longest_streak,
                streak_row.total_lessons_completed,
                streak_row.last_activity_date,
            )
            snapshot = advance_streak(previous, today)
            written = self.streak_repo.compare_and_set(
                user_id,
                streak_row.version,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                total_lessons_completed=snapshot.total_lessons_completed,
                last_activity_date=snapshot.last_activity_date,
                updated_at=now,
            )
            if not written:
                raise _StaleStreak()

        row.status = models.ProgressStatus.COMPLETED.value
        row.score = score
        row.completed_at = now
        row.time_spent_seconds = time_spent_seconds
        row.completions = (row.completions or 0) + 1
        self.progress_repo.save(row)

        receipt = self.receipt_repo.insert(models.CompletionReceipt(
            user_id=user_id,
            lesson_id=lesson_id,
            attempt_id=key,
            score=score,
            current_streak=snapshot.current_streak,
            longest_streak=snapshot.longest_streak,
            total_lessons_completed=snapshot.total_lessons_completed,
            created_at=now,
        ))
        result = CompletionResult.from_receipt(receipt, replayed=False)
        self.session.commit()
        tracker_log.info(
            "lesson completed user=%s lesson=%s score=%d streak=%d total=%d",
            user_id, lesson_id, score, snapshot.current_streak, snapshot.total_lessons_completed,
        )
        return result

    def _require_lesson(self, lesson_id: str) -> Optional[models.Lesson]:
        try:
            return self.lesson_repo.get_published(lesson_id)
        except SQLAlchemyError:
            tracker_log.exception("lesson lookup failed for %s", lesson_id)
            raise Internal("could not load lesson")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def lesson_summary(lesson: models.Lesson) -> dict:
    return {
        "id": lesson.id,
        "title": lesson.title,
        "description": lesson.description,
        "category": lesson.category,
        "difficulty": lesson.difficulty,
        "durationMinutes": lesson.duration_minutes,
        "orderIndex": lesson.order_index,
    }


class CatalogService:
    """Read-only lesson catalog with client-safe question payloads."""
    def __init__(self, session: Session):
        self.session = session
        self.lesson_repo = repositories.LessonRepository(session)
        self.q_repo = repositories.QuestionRepository(session)

    def list_lessons(self, category: Optional[str] = None, difficulty: Optional[str] = None, search: Optional[str] = None) -> List[dict]:
        return [lesson_summary(lesson) for lesson in self.lesson_repo.list_published(category, difficulty, search)]

    def get_lesson(self, lesson_id: str) -> dict:
        """Return a lesson with its quiz; correct answers are never included."""
        lesson = self.lesson_repo.get_published(lesson_id)
        if lesson is None:
            raise NotFound("Lesson not found")
        out = lesson_summary(lesson)
        out["scenarioText"] = lesson.scenario_text
        out["content"] = lesson.content or {}
        out["questions"] = [
            {
                "id": q.id,
                "questionText": q.question_text,
                "options": list(q.options or []),
                "orderIndex": q.order_index,
            }
            for q in self.q_repo.list_for_lesson(lesson.id)
        ]
        return out


class BookmarkService:
    """Save lessons for later."""
    def __init__(self, session: Session):
        self.session = session
        self.lesson_repo = repositories.LessonRepository(session)
        self.bookmark_repo = repositories.BookmarkRepository(session)

    def add(self, user_id: str, lesson_id: str) -> models.LessonBookmark:
        if self.lesson_repo.get_published(lesson_id) is None:
            raise NotFound("Lesson not found")
        return self.bookmark_repo.add(user_id, lesson_id)

    def remove(self, user_id: str, lesson_id: str) -> bool:
        return self.bookmark_repo.remove(user_id, lesson_id)

    def list(self, user_id: str) -> List[dict]:
        bookmarks = self.bookmark_repo.list_for_user(user_id)
        lessons = self.lesson_repo.get_many(b.lesson_id for b in bookmarks)
        out = []
        for b in bookmarks:
            lesson = lessons.get(b.lesson_id)
            if lesson is None or not lesson.is_published:
                continue
            item = lesson_summary(lesson)
            item["bookmarkedAt"] = _iso(b.created_at)
            out.append(item)
        return out


class ProfileService:
    def __init__(self, session: Session):
        self.session = session
        self.profile_repo = repositories.ProfileRepository(session)

    def get(self, user_id: str) -> dict:
        profile = self.profile_repo.get(user_id)
        if profile is None:
            return {"fullName": None, "jobTitle": None, "company": None}
        return {"fullName": profile.full_name, "jobTitle": profile.job_title, "company": profile.company}

    def update(self, user_id: str, full_name: Optional[str], job_title: Optional[str], company: Optional[str]) -> dict:
        self.profile_repo.upsert(models.Profile(
            user_id=user_id,
            full_name=full_name,
            job_title=job_title,
            company=company,
            updated_at=utcnow(),
        ))
        return self.get(user_id)


_LEVEL_BY_VALUE = {
    1: models.SkillLevel.BEGINNER,
    2: models.SkillLevel.INTERMEDIATE,
    3: models.SkillLevel.ADVANCED,
}


def score_category(answers: Dict[str, int]) -> tuple:
    """Return `(level, confidence_score)` for one category of answers.

    Two or more advanced answers make the category advanced, otherwise two
    or more intermediate answers make it intermediate, otherwise beginner.
    Confidence is the mean answer value rounded half up.
    """
    if not answers:
        raise ValueError("category has no answers")
    counts = {level: 0 for level in models.SkillLevel}
    for value in answers.values():
        if value not in _LEVEL_BY_VALUE:
            raise ValueError("answer values must be 1, 2 or 3")
        counts[_LEVEL_BY_VALUE[value]] += 1
    if counts[models.SkillLevel.ADVANCED] >= 2:
        level = models.SkillLevel.ADVANCED
    elif counts[models.SkillLevel.INTERMEDIATE] >= 2:
        level = models.SkillLevel.INTERMEDIATE
    else:
        level = models.SkillLevel.BEGINNER
    confidence = math.floor(sum(answers.values()) / len(answers) + 0.5)
    return level, confidence


class AssessmentService:
    """Self-assessed skill levels feeding the recommender."""
    def __init__(self, session: Session):
        self.session = session
        self.assessment_repo = repositories.AssessmentRepository(session)

    def submit(self, user_id: str, responses: Dict[str, Dict[str, int]]) -> List[dict]:
        if not responses:
            raise BadRequest("responses must contain at least one category")
        rows = []
        now = utcnow()
        for category, answers in responses.items():
            try:
                level, confidence = score_category(answers)
            except ValueError as e:
                raise BadRequest(f"{category}: {e}")
            rows.append(models.SkillAssessment(
                user_id=user_id,
                category=category,
                level=level.value,
                confidence_score=confidence,
                responses=dict(answers),
                completed_at=now,
            ))
        self.assessment_repo.add_many(rows)
        return [self._to_dict(r) for r in rows]

    def latest(self, user_id: str) -> Dict[str, dict]:
        return {cat: self._to_dict(row) for cat, row in self.assessment_repo.latest_per_category(user_id).items()}

    @staticmethod
    def _to_dict(row: models.SkillAssessment) -> dict:
        return {
            "category": row.category,
            "level": row.level,
            "confidenceScore": row.confidence_score,
            "completedAt": _iso(row.completed_at),
        }


class CertificateService:
    """Data needed to render completion certificates."""
    def __init__(self, session: Session):
        self.session = session
        self.lesson_repo = repositories.LessonRepository(session)
        self.progress_repo = repositories.ProgressRepository(session)
        self.profile_repo = repositories.ProfileRepository(session)

    def list(self, user_id: str) -> dict:
        completed = self.progress_repo.list_for_user(user_id, models.ProgressStatus.COMPLETED.value)
        lessons = self.lesson_repo.get_many(p.lesson_id for p in completed)
        profile = self.profile_repo.get(user_id)
        certificates = []
        for p in sorted(completed, key=lambda r: r.completed_at or r.last_accessed_at, reverse=True):
            lesson = lessons.get(p.lesson_id)
            if lesson is None:
                continue
            certificates.append({
                "lessonId": lesson.id,
                "title": lesson.title,
                "category": lesson.category,
                "score": p.score,
                "completedAt": _iso(p.completed_at),
            })
        return {
            "recipient": (profile.full_name if profile and profile.full_name else None),
            "certificates": certificates,
        }


class RecommendationService:
    """Ask the LLM recommender for lessons, degrading to an empty list."""
    FALLBACK_COUNT = 3

    def __init__(self, session: Session, completion_fn=None):
        self.session = session
        self.completion_fn = completion_fn or recommender.request_completion
        self.lesson_repo = repositories.LessonRepository(session)
        self.progress_repo = repositories.ProgressRepository(session)
        self.streak_repo = repositories.StreakRepository(session)
        self.profile_repo = repositories.ProfileRepository(session)
        self.assessment_repo = repositories.AssessmentRepository(session)

    def build_context(self, user_id: str) -> tuple:
        """Return `(context, available_lessons)` for the prompt."""
        profile = self.profile_repo.get(user_id)
        streak = self.streak_repo.get(user_id)
        completed_ids = {
            p.lesson_id for p in self.progress_repo.list_for_user(user_id, models.ProgressStatus.COMPLETED.value)
        }
        available = [l for l in self.lesson_repo.list_published() if l.id not in completed_ids]
        skills = {
            cat: {"level": a.level, "confidence_score": a.confidence_score}
            for cat, a in self.assessment_repo.latest_per_category(user_id).items()
        }
        context = {
            "profile": {
                "name": (profile.full_name if profile else None) or "User",
                "job_title": (profile.job_title if profile else None) or "Professional",
                "company": (profile.company if profile else None) or "Organization",
            },
            "stats": {
                "current_streak": streak.current_streak if streak else 0,
                "total_completed": streak.total_lessons_completed if streak else 0,
            },
            "skill_levels": skills,
            "has_assessment": bool(skills),
            "completed_lessons_count": len(completed_ids),
            "available_lessons": [
                {
                    "id": l.id,
                    "title": l.title,
                    "description": l.description,
                    "category": l.category,
                    "difficulty": l.difficulty,
                    "duration": l.duration_minutes,
                }
                for l in available
            ],
        }
        return context, available

    def recommend(self, user_id: str) -> dict:
        context, available = self.build_context(user_id)
        summary = {
            "completed": context["completed_lessons_count"],
            "available": len(available),
            "streak": context["stats"]["current_streak"],
        }
        if not available:
            return {"recommendations": [], "userContext": summary}
        try:
            reply = self.completion_fn(context)
        except recommender.RecommenderUnavailable as exc:
            recommender_log.warning("recommender unavailable: %s", exc)
            return {"recommendations": [], "userContext": summary, "error": exc.user_message, "retryable": True}
        try:
            picks = recommender.extract_recommendations(reply)
        except ValueError:
            recommender_log.warning("could not parse recommender reply: %r", reply[:200])
            picks = [
                {"lesson_id": l.id, "reason": "Recommended based on your current progress", "priority": i + 1}
                for i, l in enumerate(available[:self.FALLBACK_COUNT])
            ]
        by_id = {l.id: l for l in available}
        enriched = []
        seen = set()
        for pick in picks:
            lesson = by_id.get(str(pick.get("lesson_id")))
            if lesson is None or lesson.id in seen:
                continue
            seen.add(lesson.id)
            item = lesson_summary(lesson)
            item["recommendationReason"] = pick.get("reason")
            item["priority"] = _priority(pick.get("priority"))
            enriched.append(item)
        enriched.sort(key=lambda item: item["priority"])
        recommender_log.info("returning %d recommendations for user=%s", len(enriched), user_id)
        return {"recommendations": enriched, "userContext": summary}


def _priority(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 99


class ImportService:
    """Import lesson packs from files and persist them to the DB."""
    def __init__(self, session: Session):
        self.session = session
        self.lesson_repo = repositories.LessonRepository(session)

    def import_file(self, file_bytes: bytes, filename: str, deduplicate: bool = True, dry_run: bool = False) -> dict:
        """Parse `filename` contents and create `Lesson` and `QuizQuestion` rows.

        Returns a dictionary with the number of created lessons, skipped
        duplicates and validation `errors` per item. Invalid lessons are
        reported and skipped without aborting the rest of the file.
        """
        parsed = parse_file_to_lessons(file_bytes, filename)
        created = 0
        skipped = 0
        errors = []
        for idx, item in enumerate(parsed):
            try:
                self._validate_parsed_lesson(item)
            except ValueError as e:
                errors.append({'index': idx, 'error': str(e), 'title': item.get('title')})
                continue
            if deduplicate and item.get('id') and self.lesson_repo.get(item['id']) is not None:
                skipped += 1
                continue
            lesson_fields = {k: v for k, v in item.items() if k not in ('questions', 'id') and v is not None}
            lesson = models.Lesson(**lesson_fields)
            if item.get('id'):
                lesson.id = item['id']
            questions = []
            for order, q in enumerate(item['questions']):
                question = models.QuizQuestion(
                    lesson_id=lesson.id,
                    question_text=q['question_text'],
                    options=q['options'],
                    correct_answer=q['correct_answer'],
                    explanation=q.get('explanation'),
                    order_index=order,
                )
                if q.get('id'):
                    question.id = q['id']
                questions.append(question)
            if not dry_run:
                try:
                    self.lesson_repo.create(lesson, questions)
                except IntegrityError:
                    self.session.rollback()
                    errors.append({'index': idx, 'error': 'lesson or question id already exists', 'title': item.get('title')})
                    continue
            created += 1
        return {'created': created, 'skipped': skipped, 'errors': errors}

    def _validate_parsed_lesson(self, item: dict):
        """Validate a parsed lesson dictionary and raise ValueError on error."""
        if item.get('_invalid'):
            raise ValueError(item['_invalid'])
        if not item.get('title'):
            raise ValueError('missing or empty title')
        for n, q in enumerate(item.get('questions', [])):
            if q.get('_invalid'):
                raise ValueError(f"question {n}: {q['_invalid']}")
            if not q.get('question_text'):
                raise ValueError(f'question {n}: missing question_text')
            if len(q.get('options') or []) < 2:
                raise ValueError(f'question {n}: at least two options required')
            correct = q.get('correct_answer')
            if correct is None or not 0 <= correct < len(q['options']):
                raise ValueError(f'question {n}: correct answer missing or out of range')
