"""Pydantic request schemas used by the API.

Wire names are camelCase to match the browser client; handlers read the
snake_case attributes. Integer fields are strict so `true` or `"1"` are
rejected as malformed rather than coerced.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class ValidateAnswerIn(_CamelModel):
    """One answer submission for one question."""
    question_id: str = Field(alias="questionId", min_length=1)
    selected_answer: StrictInt = Field(alias="selectedAnswer", ge=0)


class CompleteLessonIn(_CamelModel):
    """Completion of one lesson attempt.

    `attempt_id` is the token returned by `begin`; `utc_offset_minutes`
    is the caller's offset east of UTC and decides which calendar day
    the completion counts for.
    """
    lesson_id: str = Field(alias="lessonId", min_length=1)
    score: StrictInt = Field(ge=0, le=100)
    time_spent_seconds: StrictInt = Field(alias="timeSpentSeconds", ge=0)
    attempt_id: Optional[str] = Field(default=None, alias="attemptId", min_length=1, max_length=64)
    utc_offset_minutes: Optional[StrictInt] = Field(default=None, alias="utcOffsetMinutes", ge=-840, le=840)


class ProfileIn(_CamelModel):
    full_name: Optional[str] = Field(default=None, alias="fullName", max_length=200)
    job_title: Optional[str] = Field(default=None, alias="jobTitle", max_length=200)
    company: Optional[str] = Field(default=None, max_length=200)


class AssessmentIn(_CamelModel):
    """Self-assessment answers grouped by category.

    Each answer value is 1 (beginner), 2 (intermediate) or 3 (advanced).
    """
    responses: Dict[str, Dict[str, StrictInt]]
