"""User service - lookups and administration."""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from helpdesk.core.errors import ConflictError, NotFoundError, ValidationError
from helpdesk.core.security import hash_password
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import Role
from helpdesk.db.models import User
from helpdesk.schemas.auth import UserSession, UserUpdate
from helpdesk.services import realtime_events
from helpdesk.services.realtime_events import EventBatch
from helpdesk.services.ticket_service import commit_or_raise

logger = logging.getLogger(__name__)


def get_user_by_id(db: Session, user_id: int) -> User | None:
    """Get user by ID."""
    return db.get(User, user_id)


def get_user_by_login(db: Session, login: str) -> User | None:
    """Get user by username or email."""
    value = login.strip()
    return (
        db.query(User)
        .filter(or_(User.username == value, User.email == value.lower()))
        .first()
    )


def _find_taken(db: Session, username: str, email: str) -> User | None:
    return (
        db.query(User)
        .filter(or_(User.username == username, User.email == email))
        .first()
    )


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    role: Role = Role.REQUESTER,
    telegram_chat_id: str | None = None,
) -> User:
    """
    Create a user with a hashed password.

    Raises:
        ConflictError: username or email already taken
    """
    email = email.strip().lower()
    existing = _find_taken(db, username, email)
    if existing:
        field = "Username" if existing.username == username else "Email"
        raise ConflictError(f"{field} already registered")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        telegram_chat_id=telegram_chat_id,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent registration took the username or email after the check
        db.rollback()
        raise ConflictError("Username or email already registered")
    db.refresh(user)
    logger.info("User created", extra=build_log_context(user_id=str(user.id)))
    return user


def list_users(db: Session, *, role: Role | None = None, active_only: bool = False) -> list[User]:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if active_only:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def update_user(
    db: Session,
    *,
    actor: UserSession,
    user_id: int,
    data: UserUpdate,
    events: EventBatch,
) -> User:
    """
    Admin update of role, active flag and Telegram chat id.

    An admin cannot deactivate or demote their own account. Role and
    active-flag changes are re-applied to the user's open websockets.
    """
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    changes = {field: getattr(data, field) for field in data.model_fields_set}
    if user.id == actor.user_id:
        if changes.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account")
        if "role" in changes and changes["role"] != Role.ADMIN:
            raise ValidationError("You cannot change your own role")

    for field in ("role", "is_active"):
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null")

    for field, value in changes.items():
        setattr(user, field, value)

    if changes:
        commit_or_raise(db, "update user", user_id=str(user_id))
        db.refresh(user)
        if "role" in changes or "is_active" in changes:
            events.restrict(
                realtime_events.user_access_changed(user.id, role=user.role, is_active=user.is_active)
            )
        logger.info(
            "User %s updated (%s)",
            user_id,
            ", ".join(sorted(changes)),
            extra=build_log_context(user_id=str(actor.user_id)),
        )
    return user
