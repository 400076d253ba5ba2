"""Tests for password hashing and session tokens."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from helpdesk.core import security
from helpdesk.core.config import settings
from helpdesk.core.deps import resolve_user
from helpdesk.core.errors import AuthenticationError
from helpdesk.db.enums import Role

from factories import make_user


def test_password_hash_roundtrip():
    hashed = security.hash_password("s3cret!")
    assert hashed != "s3cret!"
    assert security.verify_password("s3cret!", hashed) is True
    assert security.verify_password("wrong", hashed) is False


def test_malformed_hash_never_matches():
    assert security.verify_password("anything", "not-a-hash") is False


def test_token_carries_subject_and_role():
    token = security.create_session_token(user_id=7, role=Role.TECHNICIAN.value)
    payload = security.decode_session_token(token)
    assert payload["sub"] == "7"
    assert payload["role"] == "tecnico"


def test_previous_secret_still_accepted(monkeypatch):
    old_token = jwt.encode(
        {"sub": "7", "role": "usuario", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        "old-secret",
        algorithm="HS256",
    )
    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "old-secret")

    assert security.decode_session_token(old_token)["sub"] == "7"


def test_unknown_secret_rejected():
    token = jwt.encode({"sub": "7", "role": "usuario"}, "other-secret", algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        security.decode_session_token(token)


def test_expired_token(db):
    user = make_user(db, "rosa", Role.REQUESTER)
    token = jwt.encode(
        {"sub": str(user.id), "role": "usuario", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.JWT_SECRET,
        algorithm="HS256",
    )

    with pytest.raises(AuthenticationError) as exc:
        resolve_user(db, token)
    assert exc.value.message == "Session expired"


def test_token_for_deleted_user(db):
    token = security.create_session_token(user_id=999, role="usuario")
    with pytest.raises(AuthenticationError) as exc:
        resolve_user(db, token)
    assert exc.value.message == "User not found"


def test_missing_token(db):
    with pytest.raises(AuthenticationError):
        resolve_user(db, None)
