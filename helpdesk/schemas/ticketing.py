"""Pydantic schemas for tickets and ticket chat."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helpdesk.db.enums import DEFAULT_TICKET_PRIORITY, Department, Role, TicketPriority, TicketStatus

MESSAGE_MAX_LENGTH = 2000
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 2000

# Fields that may never be set to null through a patch
_NON_NULLABLE_PATCH_FIELDS = ("name", "floor", "office", "department", "description", "priority", "status")


def _require_text(value: str | None) -> str | None:
    # Values are stored as given; only blank input is refused
    if value is not None and not value.strip():
        raise ValueError("must not be blank")
    return value


# =============================================================================
# Users (embedded summaries)
# =============================================================================


class UserSummary(BaseModel):
    """Public identity of a requester, assignee or message author."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: Role


# =============================================================================
# Tickets
# =============================================================================


class TicketCreate(BaseModel):
    """Requester-supplied fields for a new ticket."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    floor: int = Field(ge=1)
    office: str = Field(min_length=1, max_length=50)
    department: Department
    description: str = Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    priority: TicketPriority = DEFAULT_TICKET_PRIORITY

    @field_validator("name", "office", "description")
    @classmethod
    def not_blank(cls, value: str | None) -> str | None:
        return _require_text(value)


class TicketUpdate(BaseModel):
    """
    Partial ticket update.

    Unknown keys (including ``requester_id``) are rejected. Only keys present
    in the request body are applied; ``assignee_id: null`` unassigns.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    floor: int | None = Field(default=None, ge=1)
    office: str | None = Field(default=None, min_length=1, max_length=50)
    department: Department | None = None
    description: str | None = Field(
        default=None, min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH
    )
    priority: TicketPriority | None = None
    status: TicketStatus | None = None
    internal_notes: str | None = Field(default=None, max_length=10000)
    assignee_id: int | None = None

    @field_validator("name", "office", "description")
    @classmethod
    def not_blank(cls, value: str | None) -> str | None:
        return _require_text(value)

    @model_validator(mode="after")
    def reject_nulls(self) -> "TicketUpdate":
        for field in _NON_NULLABLE_PATCH_FIELDS:
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        """Return only the keys the client actually sent."""
        return {field: getattr(self, field) for field in self.model_fields_set}


class TicketRead(BaseModel):
    """Ticket with requester/assignee summaries."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    floor: int
    office: str
    department: Department
    description: str
    priority: TicketPriority
    status: TicketStatus
    internal_notes: str | None = None
    requester_id: int
    assignee_id: int | None = None
    requester: UserSummary
    assignee: UserSummary | None = None
    closed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TicketListResponse(BaseModel):
    """Ticket list response with page/limit pagination."""

    items: list[TicketRead]
    pagination: Pagination


class ChatMessageRead(BaseModel):
    """Chat entry with its author summary."""

    id: int
    ticket_id: int
    author_id: int
    message: str
    is_internal: bool
    author: UserSummary
    created_at: datetime
    updated_at: datetime


class TicketDetailResponse(BaseModel):
    """Ticket plus the chat messages the caller may see."""

    ticket: TicketRead
    messages: list[ChatMessageRead] = Field(default_factory=list)


# =============================================================================
# Chat
# =============================================================================


class ChatMessageCreate(BaseModel):
    ticket_id: int
    message: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH)
    is_internal: bool = False

    @field_validator("message")
    @classmethod
    def not_blank(cls, value: str | None) -> str | None:
        return _require_text(value)


class ChatMessageUpdate(BaseModel):
    message: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH)

    @field_validator("message")
    @classmethod
    def not_blank(cls, value: str | None) -> str | None:
        return _require_text(value)


# =============================================================================
# Stats
# =============================================================================


class TrendPoint(BaseModel):
    date: str
    count: int


class TicketStats(BaseModel):
    """Aggregates scoped to what the caller may list."""

    total: int
    open: int
    in_progress: int
    closed: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_department: dict[str, int]
    avg_resolution_hours: float
    trend_7d: list[TrendPoint]
    daily_average_30d: float


class SuccessResponse(BaseModel):
    success: bool = True
