"""User ORM model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.db.base import Base
from helpdesk.db.enums import STAFF_ROLES, Role
from helpdesk.db.types import enum_type, now_utc

if TYPE_CHECKING:
    from helpdesk.db.models import ChatMessage, Ticket


class User(Base):
    """
    Application user.

    Never hard-deleted: deactivate with ``is_active`` instead so ticket and
    message history keeps its author.
    """

    __tablename__ = "users"
    __table_args__ = (Index("ix_users_role_active", "role", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(
        enum_type(Role, name="user_role"), default=Role.REQUESTER, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Outbound Telegram notifications target
    telegram_chat_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=now_utc, onupdate=now_utc, nullable=False
    )

    requested_tickets: Mapped[list["Ticket"]] = relationship(
        back_populates="requester", foreign_keys="Ticket.requester_id"
    )
    assigned_tickets: Mapped[list["Ticket"]] = relationship(
        back_populates="assignee", foreign_keys="Ticket.assignee_id"
    )
    messages: Mapped[list["ChatMessage"]] = relationship(back_populates="author")

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
