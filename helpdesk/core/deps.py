"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from helpdesk.core.errors import AuthenticationError, AuthorizationError
from helpdesk.core.security import decode_session_token
from helpdesk.db.session import SessionLocal


# Cookie name for browser sessions (Bearer header takes precedence)
COOKIE_NAME = "helpdesk_session"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def extract_token(request: Request) -> str | None:
    """Session token from ``Authorization: Bearer`` or the session cookie."""
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(COOKIE_NAME) or None


def resolve_user(db: Session, token: str | None):
    """
    Resolve a session token to an active user row.

    Shared by HTTP dependencies and the websocket ``authenticate`` event.

    Raises:
        AuthenticationError: Missing/invalid/expired token or unknown user
        AuthorizationError: Account disabled
    """
    # Import here to avoid circular imports
    from helpdesk.db.models import User

    if not token:
        raise AuthenticationError()

    try:
        payload = decode_session_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid session")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid session")

    user = db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthorizationError("Account disabled")

    return user


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    Get authenticated user from the Bearer header or session cookie.

    Raises:
        AuthenticationError 401: Authentication failed
        AuthorizationError 403: Account disabled
    """
    return resolve_user(db, extract_token(request))


def session_for(user):
    """Build the acting identity for a user row."""
    from helpdesk.schemas.auth import UserSession

    return UserSession(
        user_id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
    )


def get_current_session(request: Request, db: Session = Depends(get_db)):
    """
    Get full session context: user_id, username, role.

    This is the PRIMARY auth dependency for most endpoints. The role is
    always re-read from the user row, never trusted from the token.
    """
    user = get_current_user(request, db)
    session = session_for(user)
    request.state.session = session
    return session


def require_roles(allowed_roles: list):
    """
    Dependency factory for role-based authorization.

    Uses enum values (not strings) to prevent drift.

    Usage:
        @router.get("/users", dependencies=[Depends(require_roles([Role.TECHNICIAN, Role.ADMIN]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise AuthorizationError(
                f"Role '{session.role.value}' not authorized for this action"
            )
        return session

    return dependency


def get_fanout(request: Request):
    """The application's realtime fanout (websocket + outbound)."""
    return request.app.state.fanout
