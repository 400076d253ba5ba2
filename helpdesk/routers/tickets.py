"""Ticket CRUD, listing and stats endpoints."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, get_fanout
from helpdesk.db.enums import Department, TicketPriority, TicketStatus
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.ticketing import (
    SuccessResponse,
    TicketCreate,
    TicketDetailResponse,
    TicketListResponse,
    TicketRead,
    TicketStats,
    TicketUpdate,
)
from helpdesk.services import stats_service, ticket_service
from helpdesk.services.realtime_events import EventBatch, RealtimeFanout
from helpdesk.utils.pagination import PaginationParams, get_pagination

router = APIRouter()


def _publish(background_tasks: BackgroundTasks, fanout: RealtimeFanout, events: EventBatch) -> None:
    # Delivered after the response is sent
    if not events.is_empty:
        background_tasks.add_task(fanout.publish, events)


@router.post("", response_model=TicketRead, status_code=201)
def create_ticket(
    data: TicketCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    """Open a ticket. Status starts as Nuevo and nobody is assigned."""
    events = EventBatch()
    ticket = ticket_service.create_ticket(db, actor=session, data=data, events=events)
    _publish(background_tasks, fanout, events)
    return ticket_service.to_ticket_read(ticket, session)


@router.get("", response_model=TicketListResponse)
def list_tickets(
    status: TicketStatus | None = None,
    priority: TicketPriority | None = None,
    department: Department | None = None,
    assigned_to: str | None = None,
    search: str | None = None,
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    List tickets visible to the caller, newest first.

    ``assigned_to`` takes a user id or ``unassigned``; ``search`` matches
    name, description and office.
    """
    filters = ticket_service.TicketFilters(
        status=status,
        priority=priority,
        department=department,
        assigned_to=assigned_to,
        search=search,
    )
    return ticket_service.list_tickets(db, actor=session, filters=filters, pagination=pagination)


@router.get("/stats", response_model=TicketStats)
def get_stats(
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Dashboard aggregates over the tickets the caller can list."""
    return stats_service.get_ticket_stats(db, actor=session)


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(
    ticket_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    return ticket_service.get_ticket_detail(db, actor=session, ticket_id=ticket_id)


@router.put("/{ticket_id}", response_model=TicketRead)
@router.patch("/{ticket_id}", response_model=TicketRead, include_in_schema=False)
def update_ticket(
    ticket_id: int,
    patch: TicketUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    """Partial update; only keys present in the body are applied."""
    events = EventBatch()
    ticket = ticket_service.update_ticket(
        db, actor=session, ticket_id=ticket_id, patch=patch, events=events
    )
    _publish(background_tasks, fanout, events)
    return ticket_service.to_ticket_read(ticket, session)


@router.delete("/{ticket_id}", response_model=SuccessResponse)
def delete_ticket(
    ticket_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    """Hard delete (admin only). Messages go with the ticket."""
    events = EventBatch()
    ticket_service.delete_ticket(db, actor=session, ticket_id=ticket_id, events=events)
    _publish(background_tasks, fanout, events)
    return SuccessResponse()
