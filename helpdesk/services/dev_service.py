"""Dev-only helpers for local seeding."""

from sqlalchemy.orm import Session

from helpdesk.core.security import hash_password
from helpdesk.db.enums import Role
from helpdesk.db.models import User

# username, email, password, role
SEED_USERS: list[tuple[str, str, str, Role]] = [
    ("admin", "admin@helpdesk.test", "admin123", Role.ADMIN),
    ("tecnico", "tecnico@helpdesk.test", "tecnico123", Role.TECHNICIAN),
    ("usuario", "usuario@helpdesk.test", "usuario123", Role.REQUESTER),
]


def _get_or_create_user(
    db: Session, username: str, email: str, password: str, role: Role
) -> tuple[User, bool]:
    user = db.query(User).filter(User.username == username).first()
    if user:
        return user, False

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user, True


def seed_users(db: Session) -> list[dict]:
    """
    Create one user per role. Idempotent: existing usernames are left alone.

    Returns one entry per seed user with a ``created`` flag.
    """
    results = []
    for username, email, password, role in SEED_USERS:
        user, created = _get_or_create_user(db, username, email, password, role)
        results.append(
            {
                "user_id": user.id,
                "username": user.username,
                "role": user.role.value,
                "created": created,
            }
        )
    db.commit()
    return results
