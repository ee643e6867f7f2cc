"""Signed-in contributor sessions.

Sessions are HS256 JWTs signed with SESSION_SECRET, carried either as a
bearer token or in the session cookie. ``sub`` is the user id and ``jti``
is the session id recorded on signatures.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from clabot_api.db.session import get_db
from clabot_api.errors import UnauthorizedError
from clabot_api.models import User
from clabot_api.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

SESSION_TTL = timedelta(hours=12)


@dataclass
class SessionContext:
    user: User
    session_id: Optional[str]


def create_session_token(user: User, ttl: timedelta = SESSION_TTL) -> tuple[str, str]:
    """Issue a session token for ``user``; returns ``(token, session_id)``."""
    settings = get_settings()
    session_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "login": user.github_login,
        "jti": session_id,
        "iat": now,
        "exp": now + ttl,
    }
    token = jwt.encode(payload, settings.session_secret, algorithm=settings.jwt_algorithm)
    return token, session_id


def decode_session_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as e:
        raise UnauthorizedError("Invalid or expired session") from e


def _session_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name)


def get_optional_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[SessionContext]:
    """Session for the request, or None when no token was sent."""
    token = _session_token(request, credentials)
    if not token:
        return None
    claims = decode_session_token(token)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError) as e:
        raise UnauthorizedError("Invalid session subject") from e
    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("Session user no longer exists")
    return SessionContext(user=user, session_id=claims.get("jti"))


def get_current_session(
    session: Optional[SessionContext] = Depends(get_optional_session),
) -> SessionContext:
    if session is None:
        raise UnauthorizedError("Sign in with GitHub to continue")
    return session
