"""Authentication helpers and FastAPI security dependency.

Tokens are issued by an external identity provider and signed with a
shared secret. This module only verifies them: `get_current_user`
decodes the bearer token and returns a `CurrentUser` built from the
`sub` claim. No database lookup happens here, so an unauthenticated
request is rejected before any data is read.
"""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .errors import Unauthorized

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: Optional[str] = None


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `Unauthorized`.
    """
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE or None,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("invalid token")


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> CurrentUser:
    """FastAPI dependency that returns the authenticated caller.

    Raises `Unauthorized` for a missing header, a bad signature, an
    expired token or a payload without a subject.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("missing bearer token")
    payload = decode_token(credentials.credentials)
    subject = payload.get("sub")
    if not subject:
        raise Unauthorized("invalid token payload")
    return CurrentUser(id=str(subject), email=payload.get("email"))
