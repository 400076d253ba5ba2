"""Ticket and chat ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.db.base import Base
from helpdesk.db.enums import (
    DEFAULT_TICKET_PRIORITY,
    DEFAULT_TICKET_STATUS,
    Department,
    TicketPriority,
    TicketStatus,
)
from helpdesk.db.types import enum_type, now_utc

if TYPE_CHECKING:
    from helpdesk.db.models import User


class Ticket(Base):
    """
    Support ticket opened by a requester.

    ``requester_id`` is fixed at creation. ``closed_at`` is stamped the first
    time the status enters Resuelto/Cerrado and is never cleared afterwards.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        CheckConstraint("floor >= 1", name="ck_tickets_floor_positive"),
        Index("idx_tickets_status", "status"),
        Index("idx_tickets_priority", "priority"),
        Index("idx_tickets_department", "department"),
        Index("idx_tickets_assignee", "assignee_id"),
        Index("idx_tickets_requester", "requester_id"),
        Index("idx_tickets_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    floor: Mapped[int] = mapped_column(Integer, nullable=False)
    office: Mapped[str] = mapped_column(String(50), nullable=False)
    department: Mapped[Department] = mapped_column(
        enum_type(Department, name="ticket_department"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[TicketPriority] = mapped_column(
        enum_type(TicketPriority, name="ticket_priority"),
        default=DEFAULT_TICKET_PRIORITY,
        nullable=False,
    )
    status: Mapped[TicketStatus] = mapped_column(
        enum_type(TicketStatus, name="ticket_status"),
        default=DEFAULT_TICKET_STATUS,
        nullable=False,
    )
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    assignee_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=now_utc, onupdate=now_utc, nullable=False
    )

    requester: Mapped["User"] = relationship(
        back_populates="requested_tickets", foreign_keys=[requester_id]
    )
    assignee: Mapped["User | None"] = relationship(
        back_populates="assigned_tickets", foreign_keys=[assignee_id]
    )
    messages: Mapped[list["ChatMessage"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChatMessage.created_at",
    )


class ChatMessage(Base):
    """Chat entry scoped to one ticket. Internal entries are staff-only."""

    __tablename__ = "chat_messages"
    __table_args__ = (Index("idx_chat_messages_ticket_created", "ticket_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=now_utc, onupdate=now_utc, nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="messages")
    author: Mapped["User"] = relationship(back_populates="messages")
