"""Authentication-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from helpdesk.db.enums import STAFF_ROLES, Role


class UserSession(BaseModel):
    """
    Acting identity for an authenticated request or socket.

    Returned by the get_current_session dependency; it is the ``actor``
    handed to every policy check.
    """
    user_id: int
    username: str
    email: str
    role: Role  # Validated enum
    is_active: bool = True

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class RegisterRequest(BaseModel):
    """Self-registration. The role is always requester."""
    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.\-]+$")
    email: EmailStr = Field(max_length=100)
    password: str = Field(min_length=6, max_length=255)


class LoginRequest(BaseModel):
    """Login with username or email."""
    login: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=255)


class UserRead(BaseModel):
    """User as seen by itself or by staff. Never includes the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: Role
    is_active: bool
    last_login_at: datetime | None = None
    telegram_chat_id: str | None = None
    created_at: datetime


class AuthResponse(BaseModel):
    """Token + user returned by register/login."""
    token: str
    token_type: str = "bearer"
    user: UserRead


class UserUpdate(BaseModel):
    """Admin-only user changes."""
    model_config = ConfigDict(extra="forbid")

    role: Role | None = None
    is_active: bool | None = None
    telegram_chat_id: str | None = Field(default=None, max_length=64)
