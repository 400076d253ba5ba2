"""Security utilities for password hashing and JWT session tokens."""

from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from helpdesk.core.config import settings


# =============================================================================
# Passwords
# =============================================================================

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using Argon2."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash. Malformed hashes never match."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


# =============================================================================
# Session Token (JWT, Bearer header or cookie)
# =============================================================================

def create_session_token(user_id: int, role: str) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET). The role claim is
    informational only; authorization always re-reads the user row.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error: jwt.InvalidTokenError | None = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            # Expiry does not depend on the key, no point trying the next one
            raise
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore[misc]
