"""Typed application errors.

Services raise these instead of `HTTPException` so they stay usable
outside a request (scripts, tests). `main.py` renders every `AppError`
as `{"error": <message>, "retryable": <bool>}` with `status_code`.
"""

from typing import Dict, Optional


class AppError(Exception):
    status_code = 500
    retryable = False
    default_message = "internal error"

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.headers = headers or {}

    def to_payload(self) -> dict:
        return {"error": self.message, "retryable": self.retryable}


class Unauthorized(AppError):
    status_code = 401
    default_message = "unauthorized"


class BadRequest(AppError):
    status_code = 400
    default_message = "bad request"


class NotFound(AppError):
    status_code = 404
    default_message = "not found"


class Conflict(AppError):
    """A concurrent write won; the request can be retried as-is."""
    status_code = 409
    retryable = True
    default_message = "conflicting concurrent update; retry"


class RateLimited(AppError):
    status_code = 429
    retryable = True
    default_message = "rate limit exceeded"


class Internal(AppError):
    """Store or network failure. Never carries internal detail."""
    status_code = 500
    retryable = True
