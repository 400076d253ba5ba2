"""Ticket lifecycle service: create, read, list, update, delete."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from helpdesk.core import policies
from helpdesk.core.deps import session_for
from helpdesk.core.errors import (
    AuthorizationError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from helpdesk.core.outbound import OutboundJob
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import (
    CLOSED_STATUSES,
    DEFAULT_TICKET_STATUS,
    Department,
    TicketPriority,
    TicketStatus,
)
from helpdesk.db.models import Ticket, User
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.ticketing import (
    Pagination,
    TicketCreate,
    TicketDetailResponse,
    TicketListResponse,
    TicketRead,
    TicketUpdate,
)
from helpdesk.services import realtime_events
from helpdesk.services.realtime_events import EventBatch
from helpdesk.utils.pagination import PaginationParams, paginate_query, total_pages

logger = logging.getLogger(__name__)

UNASSIGNED = "unassigned"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TicketFilters:
    """User-supplied list filters, applied after the role scope."""
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    department: Department | None = None
    assigned_to: str | None = None
    search: str | None = None


# =============================================================================
# Serialization
# =============================================================================


def to_ticket_read(ticket: Ticket, actor: UserSession | None = None) -> TicketRead:
    """Ticket as seen by ``actor``. Internal notes are staff-only."""
    read = TicketRead.model_validate(ticket)
    if actor is None or not actor.is_staff:
        read.internal_notes = None
    return read


def ticket_payload(ticket: Ticket) -> dict:
    """JSON payload for broadcast events (no internal notes)."""
    return to_ticket_read(ticket).model_dump(mode="json")


# =============================================================================
# Helpers
# =============================================================================


def _load_ticket(db: Session, ticket_id: int) -> Ticket:
    ticket = (
        db.query(Ticket)
        .options(joinedload(Ticket.requester), joinedload(Ticket.assignee))
        .filter(Ticket.id == ticket_id)
        .first()
    )
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def load_visible_ticket(db: Session, actor: UserSession, ticket_id: int) -> Ticket:
    """Load a ticket the actor may view (404 if absent, 403 if not allowed)."""
    ticket = _load_ticket(db, ticket_id)
    if not policies.can_view_ticket(actor, ticket):
        raise AuthorizationError("Not authorized to view this ticket")
    return ticket


def commit_or_raise(db: Session, action: str, **log_fields) -> None:
    """Commit the unit of work; roll back and surface DependencyError on failure."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to %s", action, extra=build_log_context(**log_fields))
        raise DependencyError(f"Could not {action}")


def _parse_assigned_to(value: str) -> int | None:
    if value.strip().lower() == UNASSIGNED:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError("assigned_to must be 'unassigned' or a user id")


# =============================================================================
# Operations
# =============================================================================


def create_ticket(
    db: Session,
    *,
    actor: UserSession,
    data: TicketCreate,
    events: EventBatch,
) -> Ticket:
    """Open a new ticket on behalf of ``actor``."""
    ticket = Ticket(
        name=data.name,
        floor=data.floor,
        office=data.office,
        department=data.department,
        description=data.description,
        priority=data.priority,
        status=DEFAULT_TICKET_STATUS,
        requester_id=actor.user_id,
        assignee_id=None,
    )
    db.add(ticket)
    commit_or_raise(db, "create ticket", user_id=str(actor.user_id))

    ticket = _load_ticket(db, ticket.id)
    logger.info(
        "Ticket created",
        extra=build_log_context(user_id=str(actor.user_id), ticket_id=str(ticket.id)),
    )

    payload = ticket_payload(ticket)
    events.emit(realtime_events.ticket_created(payload))
    events.enqueue(OutboundJob(realtime_events.OUTBOUND_TICKET_CREATED, payload))
    return ticket


def get_ticket(db: Session, *, actor: UserSession, ticket_id: int) -> Ticket:
    return load_visible_ticket(db, actor, ticket_id)


def get_ticket_detail(db: Session, *, actor: UserSession, ticket_id: int) -> TicketDetailResponse:
    """Ticket plus the messages the actor may see."""
    from helpdesk.services import chat_service

    ticket = load_visible_ticket(db, actor, ticket_id)
    messages = chat_service.visible_messages(db, actor, ticket)
    return TicketDetailResponse(
        ticket=to_ticket_read(ticket, actor),
        messages=[chat_service.to_message_read(m) for m in messages],
    )


def list_tickets(
    db: Session,
    *,
    actor: UserSession,
    filters: TicketFilters,
    pagination: PaginationParams,
) -> TicketListResponse:
    """List tickets visible to the actor, newest first."""
    query = (
        db.query(Ticket)
        .options(joinedload(Ticket.requester), joinedload(Ticket.assignee))
        .filter(policies.ticket_scope_filter(actor, Ticket))
    )

    if filters.status:
        query = query.filter(Ticket.status == filters.status)
    if filters.priority:
        query = query.filter(Ticket.priority == filters.priority)
    if filters.department:
        query = query.filter(Ticket.department == filters.department)
    if filters.assigned_to:
        assignee_id = _parse_assigned_to(filters.assigned_to)
        if assignee_id is None:
            query = query.filter(Ticket.assignee_id.is_(None))
        else:
            query = query.filter(Ticket.assignee_id == assignee_id)

    if filters.search and filters.search.strip():
        # Literal substring: % and _ in the term are not wildcards
        term = filters.search.strip()
        query = query.filter(
            or_(
                Ticket.name.icontains(term, autoescape=True),
                Ticket.description.icontains(term, autoescape=True),
                Ticket.office.icontains(term, autoescape=True),
            )
        )

    query = query.order_by(Ticket.created_at.desc(), Ticket.id.desc())
    items, total = paginate_query(query, pagination)

    return TicketListResponse(
        items=[to_ticket_read(t, actor) for t in items],
        pagination=Pagination(
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            total_pages=total_pages(total, pagination.limit),
        ),
    )


def update_ticket(
    db: Session,
    *,
    actor: UserSession,
    ticket_id: int,
    patch: TicketUpdate,
    events: EventBatch,
) -> Ticket:
    """
    Apply a partial update.

    Only fields that actually change are written. A patch that changes
    nothing commits nothing and emits nothing.
    """
    ticket = load_visible_ticket(db, actor, ticket_id)
    requested = patch.changes()

    if not policies.can_edit_ticket(actor, ticket, requested.keys()):
        raise AuthorizationError("Not authorized to update this ticket")

    if "assignee_id" in requested and requested["assignee_id"] is not None:
        if db.get(User, requested["assignee_id"]) is None:
            raise ValidationError("Assignee does not exist")

    changes = {
        field: value
        for field, value in requested.items()
        if getattr(ticket, field) != value
    }
    if not changes:
        return ticket

    previous_assignee = ticket.assignee_id
    for field, value in changes.items():
        setattr(ticket, field, value)

    # closed_at is stamped once, on the first entry into a closed status
    if ticket.status in CLOSED_STATUSES and ticket.closed_at is None:
        ticket.closed_at = _now_utc()

    ticket.updated_at = _now_utc()
    commit_or_raise(db, "update ticket", user_id=str(actor.user_id), ticket_id=str(ticket_id))

    ticket = _load_ticket(db, ticket_id)
    logger.info(
        "Ticket updated (%s)",
        ", ".join(sorted(changes)),
        extra=build_log_context(user_id=str(actor.user_id), ticket_id=str(ticket_id)),
    )

    payload = ticket_payload(ticket)
    events.emit(realtime_events.ticket_updated(payload))
    if "assignee_id" in changes and ticket.assignee_id is not None and ticket.assignee_id != previous_assignee:
        events.emit(
            realtime_events.ticket_assigned(ticket.assignee_id, payload, assigned_by=actor.username)
        )
        events.enqueue(OutboundJob(realtime_events.OUTBOUND_TICKET_ASSIGNED, payload))
    if "assignee_id" in changes and previous_assignee is not None:
        # A technician reassigned away from the ticket loses its channel
        previous = db.get(User, previous_assignee)
        if previous is not None and not policies.can_view_ticket(session_for(previous), ticket):
            events.restrict(realtime_events.ticket_access_revoked(previous.id, ticket.id))
    return ticket


def delete_ticket(
    db: Session,
    *,
    actor: UserSession,
    ticket_id: int,
    events: EventBatch,
) -> None:
    """Hard-delete a ticket and its messages (admin only)."""
    ticket = _load_ticket(db, ticket_id)
    if not policies.can_delete_ticket(actor):
        raise AuthorizationError("Only admins can delete tickets")

    db.delete(ticket)
    commit_or_raise(db, "delete ticket", user_id=str(actor.user_id), ticket_id=str(ticket_id))

    logger.info(
        "Ticket deleted",
        extra=build_log_context(user_id=str(actor.user_id), ticket_id=str(ticket_id)),
    )
    events.emit(realtime_events.ticket_deleted(ticket_id))
