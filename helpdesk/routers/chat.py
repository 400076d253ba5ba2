"""Ticket chat endpoints."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_current_session, get_db, get_fanout
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.ticketing import (
    ChatMessageCreate,
    ChatMessageRead,
    ChatMessageUpdate,
    SuccessResponse,
)
from helpdesk.services import chat_service
from helpdesk.services.realtime_events import EventBatch, RealtimeFanout

router = APIRouter()


@router.get("/ticket/{ticket_id}", response_model=list[ChatMessageRead])
def list_messages(
    ticket_id: int,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Messages on a ticket, oldest first. Internal notes only for staff."""
    messages = chat_service.list_messages(db, actor=session, ticket_id=ticket_id)
    return [chat_service.to_message_read(m) for m in messages]


@router.post("/message", response_model=ChatMessageRead, status_code=201)
def post_message(
    data: ChatMessageCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    events = EventBatch()
    message = chat_service.post_message(
        db,
        actor=session,
        ticket_id=data.ticket_id,
        body=data.message,
        requested_internal=data.is_internal,
        events=events,
    )
    background_tasks.add_task(fanout.publish, events)
    return chat_service.to_message_read(message)


@router.put("/message/{message_id}", response_model=ChatMessageRead)
def edit_message(
    message_id: int,
    data: ChatMessageUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    events = EventBatch()
    message = chat_service.edit_message(
        db, actor=session, message_id=message_id, body=data.message, events=events
    )
    if not events.is_empty:
        background_tasks.add_task(fanout.publish, events)
    return chat_service.to_message_read(message)


@router.delete("/message/{message_id}", response_model=SuccessResponse)
def delete_message(
    message_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    events = EventBatch()
    chat_service.delete_message(db, actor=session, message_id=message_id, events=events)
    background_tasks.add_task(fanout.publish, events)
    return SuccessResponse()
