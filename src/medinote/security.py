from __future__ import annotations

from contextvars import ContextVar
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.medinote.domain.errors import AuthError

# Bearer token is expected in the Authorization header.
_bearer_scheme = HTTPBearer(auto_error=False)

# Context variable storing the verified owner id for the in-flight request.
# Downstream consumers such as the audit logger read it to associate events
# with a subject without threading the id through every call.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the owner id of the current request, if it was authenticated."""

    return _current_subject.get()


class TokenService:
    """Issues and verifies HS256-signed bearer tokens.

    The token subject (``sub``) is the owner id that scopes every session and
    patient lookup.
    """

    def __init__(self, secret: str, *, algorithm: str = "HS256", expires_seconds: int = 24 * 60 * 60) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._expires_seconds = expires_seconds

    def issue(self, user_id: str, *, email: Optional[str] = None) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "email": email or user_id,
            "iat": now,
            "exp": now + timedelta(seconds=self._expires_seconds),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> str:
        """Return the owner id carried by ``token`` or raise AuthError."""

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid token") from exc

        subject = claims.get("sub")
        if not subject or not isinstance(subject, str):
            raise AuthError("Invalid token")
        return subject


async def get_current_owner(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer_scheme),
) -> str:
    """FastAPI dependency resolving the verified owner id of the caller.

    Raises AuthError (401) when the bearer token is missing, malformed or
    expired.
    """

    if credentials is None or not credentials.credentials:
        _current_subject.set(None)
        raise AuthError("Authorization token required")

    tokens: TokenService = request.app.state.container.tokens
    owner_id = tokens.verify(credentials.credentials)
    _current_subject.set(owner_id)
    return owner_id
