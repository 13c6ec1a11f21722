"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the micro-learning backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Errors raised by services are
`AppError`s and are rendered as `{"error": ..., "retryable": ...}`.

Endpoints implemented:
- POST /validate-answer
- GET /lessons
- GET /lessons/{lesson_id}
- POST /lessons/{lesson_id}/begin
- GET /lessons/{lesson_id}/progress
- POST /complete-lesson
- GET /progress
- GET /me/streak
- PUT /lessons/{lesson_id}/bookmark
- DELETE /lessons/{lesson_id}/bookmark
- GET /bookmarks
- GET /profile
- PUT /profile
- POST /assessments
- GET /assessments/latest
- GET /certificates
- GET /recommendations
- GET /health

Run locally with `uvicorn microlearn.main:app --reload` from `backend/`
(uvicorn ships with the `server` extra).
"""

import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from . import services
from .auth import CurrentUser, get_current_user
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import AppError, RateLimited
from .schemas import AssessmentIn, CompleteLessonIn, ProfileIn, ValidateAnswerIn
from .utils.rate_limit import SlidingWindowLimiter

app = FastAPI(title="Micro-learning API")
logger = logging.getLogger("microlearn.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
_validate_rate_limiter = SlidingWindowLimiter()

# Wide-open CORS keeps a local single-page client working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("request %s failed: %s", getattr(request.state, "request_id", "-"), exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # malformed input is a 400 for clients, not FastAPI's default 422
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content={"error": "; ".join(problems) or "malformed request", "retryable": False})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "request_failed %s",
        json.dumps(
            {
                "request_id": getattr(request.state, "request_id", "-"),
                "path": request.url.path,
                "method": request.method,
            },
            ensure_ascii=True,
        ),
    )
    return JSONResponse(status_code=500, content={"error": "internal error", "retryable": True})


def _enforce_validate_rate_limit(user: CurrentUser) -> None:
    allowed, retry_after = _validate_rate_limiter.allow(
        f"validate:{user.id}",
        settings.VALIDATE_RATE_LIMIT_PER_MIN,
        settings.VALIDATE_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        raise RateLimited(
            f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


@app.post('/validate-answer')
def validate_answer(payload: ValidateAnswerIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Grade one quiz answer on the server.

    The correct option index never leaves the server; the response only
    says whether the submitted index was right and carries the
    question's explanation.
    """
    _enforce_validate_rate_limit(user)
    verdict = services.AnswerValidator(db).validate(payload.question_id, payload.selected_answer)
    return verdict.to_dict()


@app.get('/lessons')
def list_lessons(
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    q: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """List published lessons, optionally filtered by category, difficulty or text."""
    return services.CatalogService(db).list_lessons(category=category, difficulty=difficulty, search=q)


@app.get('/lessons/{lesson_id}')
def get_lesson(lesson_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Return a lesson with its quiz questions and the caller's progress.

    Question payloads contain option labels only, never the correct index.
    """
    lesson = services.CatalogService(db).get_lesson(lesson_id)
    lesson["progress"] = services.ProgressTracker(db).get_progress(user.id, lesson_id).to_dict()
    return lesson


@app.post('/lessons/{lesson_id}/begin')
def begin_lesson(lesson_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Mark a lesson as opened.

    The returned `attemptId` identifies this lesson session and should be
    sent back with `/complete-lesson` so retried completions are counted once.
    """
    row = services.ProgressTracker(db).begin(user.id, lesson_id)
    return {
        'lessonId': lesson_id,
        'status': row.status,
        'attemptId': row.attempt_id,
        'lastAccessedAt': row.last_accessed_at.isoformat(),
    }


@app.get('/lessons/{lesson_id}/progress')
def lesson_progress(lesson_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Return the caller's progress on one lesson (`not_started` if never opened)."""
    return services.ProgressTracker(db).get_progress(user.id, lesson_id).to_dict()


@app.post('/complete-lesson')
def complete_lesson(payload: CompleteLessonIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Complete a lesson attempt and update the caller's streak atomically.

    Safe to retry: the same attempt is applied once and later calls get
    the original result back with `replayed: true`.
    """
    result = services.ProgressTracker(db).complete(
        user.id,
        payload.lesson_id,
        score=payload.score,
        time_spent_seconds=payload.time_spent_seconds,
        attempt_id=payload.attempt_id,
        utc_offset_minutes=payload.utc_offset_minutes,
    )
    return result.to_dict()


@app.get('/progress')
def list_progress(status: Optional[str] = None, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """List the caller's lesson progress rows, most recently opened first."""
    return [p.to_dict() for p in services.ProgressTracker(db).list_progress(user.id, status)]


@app.get('/me/streak')
def my_streak(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Return the caller's streak counters (zeroed before the first completion)."""
    return services.ProgressTracker(db).get_streak(user.id).to_dict()


@app.put('/lessons/{lesson_id}/bookmark')
def add_bookmark(lesson_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    bookmark = services.BookmarkService(db).add(user.id, lesson_id)
    return {'lessonId': bookmark.lesson_id, 'bookmarked': True}


@app.delete('/lessons/{lesson_id}/bookmark')
def remove_bookmark(lesson_id: str, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    services.BookmarkService(db).remove(user.id, lesson_id)
    return {'lessonId': lesson_id, 'bookmarked': False}


@app.get('/bookmarks')
def list_bookmarks(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.BookmarkService(db).list(user.id)


@app.get('/profile')
def get_profile(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.ProfileService(db).get(user.id)


@app.put('/profile')
def update_profile(payload: ProfileIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.ProfileService(db).update(user.id, payload.full_name, payload.job_title, payload.company)


@app.post('/assessments')
def submit_assessment(payload: AssessmentIn, user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Store a skill self-assessment; one level is derived per category."""
    return {'assessments': services.AssessmentService(db).submit(user.id, payload.responses)}


@app.get('/assessments/latest')
def latest_assessments(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    return services.AssessmentService(db).latest(user.id)


@app.get('/certificates')
def certificates(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Return the data for the caller's completion certificates."""
    return services.CertificateService(db).list(user.id)


@app.get('/recommendations')
def recommendations(user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_session)):
    """Return AI-ranked lesson recommendations.

    Recommender failures degrade to an empty list with an `error` message
    and never fail the request.
    """
    return services.RecommendationService(db).recommend(user.id)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
