"""Ticket chat service - messages between requesters and staff."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session, joinedload

from helpdesk.core import policies
from helpdesk.core.errors import AuthorizationError, NotFoundError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.models import ChatMessage, Ticket
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.ticketing import ChatMessageRead, UserSummary
from helpdesk.services import realtime_events
from helpdesk.services.realtime_events import EventBatch
from helpdesk.services.ticket_service import commit_or_raise, load_visible_ticket

logger = logging.getLogger(__name__)


def to_message_read(message: ChatMessage) -> ChatMessageRead:
    return ChatMessageRead(
        id=message.id,
        ticket_id=message.ticket_id,
        author_id=message.author_id,
        message=message.body,
        is_internal=message.is_internal,
        author=UserSummary.model_validate(message.author),
        created_at=message.created_at,
        updated_at=message.updated_at,
    )


def _load_message(db: Session, message_id: int) -> ChatMessage:
    message = (
        db.query(ChatMessage)
        .options(joinedload(ChatMessage.author), joinedload(ChatMessage.ticket))
        .filter(ChatMessage.id == message_id)
        .first()
    )
    if not message:
        raise NotFoundError("Message not found")
    return message


def _ensure_can_modify(actor: UserSession, message: ChatMessage) -> Ticket:
    ticket = message.ticket
    if not policies.can_edit_or_delete_message(actor, message, ticket):
        raise AuthorizationError("Not authorized to modify this message")
    return ticket


def counterpart_for(actor: UserSession, ticket: Ticket, *, is_internal: bool) -> int | None:
    """
    Who gets a ``chat:notification`` for a new message.

    Requester sender -> assignee. Staff sender -> requester for public
    messages, assignee for internal ones. Never the sender.
    """
    if actor.user_id == ticket.requester_id and not actor.is_staff:
        recipient = ticket.assignee_id
    elif is_internal:
        recipient = ticket.assignee_id
    else:
        recipient = ticket.requester_id

    if recipient is None or recipient == actor.user_id:
        return None
    return recipient


def visible_messages(db: Session, actor: UserSession, ticket: Ticket) -> list[ChatMessage]:
    """Messages on ``ticket`` the actor may read, oldest first."""
    messages = (
        db.query(ChatMessage)
        .options(joinedload(ChatMessage.author))
        .filter(ChatMessage.ticket_id == ticket.id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )
    return [m for m in messages if policies.can_view_message(actor, ticket, m)]


def list_messages(db: Session, *, actor: UserSession, ticket_id: int) -> list[ChatMessage]:
    ticket = load_visible_ticket(db, actor, ticket_id)
    return visible_messages(db, actor, ticket)


def post_message(
    db: Session,
    *,
    actor: UserSession,
    ticket_id: int,
    body: str,
    requested_internal: bool,
    events: EventBatch,
) -> ChatMessage:
    """Post a message on a ticket the actor can view."""
    ticket = load_visible_ticket(db, actor, ticket_id)

    allowed, is_internal = policies.can_post_message(actor, ticket, requested_internal)
    if not allowed:
        raise AuthorizationError("Not authorized to post on this ticket")

    message = ChatMessage(
        ticket_id=ticket.id,
        author_id=actor.user_id,
        body=body,
        is_internal=is_internal,
    )
    db.add(message)
    commit_or_raise(db, "post message", user_id=str(actor.user_id), ticket_id=str(ticket_id))

    message = _load_message(db, message.id)
    logger.info(
        "Chat message posted (internal=%s)",
        is_internal,
        extra=build_log_context(user_id=str(actor.user_id), ticket_id=str(ticket_id)),
    )

    payload = to_message_read(message).model_dump(mode="json")
    events.emit(realtime_events.message_posted(payload))
    recipient = counterpart_for(actor, ticket, is_internal=is_internal)
    if recipient is not None:
        events.emit(
            realtime_events.chat_notification(recipient, ticket_id=ticket.id, sender=actor.username)
        )
    return message


def edit_message(
    db: Session,
    *,
    actor: UserSession,
    message_id: int,
    body: str,
    events: EventBatch,
) -> ChatMessage:
    message = _load_message(db, message_id)
    _ensure_can_modify(actor, message)

    if message.body == body:
        return message

    message.body = body
    commit_or_raise(db, "edit message", user_id=str(actor.user_id), ticket_id=str(message.ticket_id))

    message = _load_message(db, message_id)
    payload = to_message_read(message).model_dump(mode="json")
    events.emit(realtime_events.message_updated(payload))
    return message


def delete_message(
    db: Session,
    *,
    actor: UserSession,
    message_id: int,
    events: EventBatch,
) -> None:
    message = _load_message(db, message_id)
    _ensure_can_modify(actor, message)

    ticket_id = message.ticket_id
    is_internal = message.is_internal
    db.delete(message)
    commit_or_raise(db, "delete message", user_id=str(actor.user_id), ticket_id=str(ticket_id))

    logger.info(
        "Chat message deleted",
        extra=build_log_context(user_id=str(actor.user_id), ticket_id=str(ticket_id)),
    )
    events.emit(realtime_events.message_deleted(message_id, ticket_id, is_internal=is_internal))
