"""Authentication service - registration and password login."""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from helpdesk.core.errors import AuthenticationError, AuthorizationError
from helpdesk.core.security import create_session_token, verify_password
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import Role
from helpdesk.db.models import User
from helpdesk.schemas.auth import AuthResponse, LoginRequest, RegisterRequest, UserRead
from helpdesk.services import user_service
from helpdesk.services.ticket_service import commit_or_raise

logger = logging.getLogger(__name__)


def issue_session(user: User) -> AuthResponse:
    """Sign a session token for ``user``."""
    token = create_session_token(user.id, user.role.value)
    return AuthResponse(token=token, user=UserRead.model_validate(user))


def register(db: Session, data: RegisterRequest) -> AuthResponse:
    """Self-registration always creates a requester."""
    user = user_service.create_user(
        db,
        username=data.username,
        email=data.email,
        password=data.password,
        role=Role.REQUESTER,
    )
    return issue_session(user)


def authenticate(db: Session, data: LoginRequest) -> AuthResponse:
    """
    Verify credentials and start a session.

    Raises:
        AuthenticationError: unknown login or wrong password (same message)
        AuthorizationError: account disabled
    """
    user = user_service.get_user_by_login(db, data.login)
    if not user or not verify_password(data.password, user.password_hash):
        logger.info("Login failed")
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        raise AuthorizationError("Account disabled")

    user.last_login_at = datetime.now(timezone.utc)
    commit_or_raise(db, "record login", user_id=str(user.id))
    db.refresh(user)

    logger.info("User logged in", extra=build_log_context(user_id=str(user.id)))
    return issue_session(user)
