"""
WebSocket router for realtime ticket and chat updates.

Protocol:
1. Client connects to ``/ws`` (unauthenticated)
2. Client sends ``authenticate`` with its session token
3. Client joins/leaves ticket channels while viewing a ticket
4. Server pushes ticket, chat and targeted notification events

Every frame is ``{"type": ..., "data": {...}}``.
"""

import logging

import anyio
from fastapi import APIRouter, WebSocket
from pydantic import ValidationError as PydanticValidationError

from helpdesk.core.config import settings
from helpdesk.core.deps import resolve_user, session_for
from helpdesk.core.errors import HelpdeskError
from helpdesk.core.structured_logging import build_log_context
from helpdesk.core.websocket import ClientConnection, ConnectionManager
from helpdesk.db.session import SessionLocal
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.realtime import (
    AuthenticateEvent,
    JoinTicketEvent,
    LeaveTicketEvent,
    PingEvent,
    TypingEvent,
    client_event_adapter,
    error_frame,
    server_frame,
)
from helpdesk.services import ticket_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


def _origin_is_allowed(origin: str | None, *, allowed: set[str], is_dev: bool) -> bool:
    if is_dev:
        return True
    return origin is not None and origin in allowed


def _log_context(connection: ClientConnection, ticket_id: int | None = None) -> dict:
    return build_log_context(
        user_id=str(connection.user_id) if connection.user_id else None,
        ticket_id=str(ticket_id) if ticket_id else None,
        connection_id=connection.id,
    )


# =============================================================================
# Store access (run in a worker thread)
# =============================================================================


def _authenticate_token(token: str) -> UserSession:
    db = SessionLocal()
    try:
        return session_for(resolve_user(db, token))
    finally:
        db.close()


def _check_ticket_access(actor: ClientConnection, ticket_id: int) -> None:
    db = SessionLocal()
    try:
        ticket_service.load_visible_ticket(db, actor, ticket_id)
    finally:
        db.close()


# =============================================================================
# Event handlers
# =============================================================================


async def _handle_authenticate(
    manager: ConnectionManager, connection: ClientConnection, event: AuthenticateEvent
) -> None:
    try:
        session = await anyio.to_thread.run_sync(_authenticate_token, event.data.token)
    except HelpdeskError as exc:
        # Connection stays open and unauthenticated
        logger.info("Socket authentication failed: %s", exc.reason, extra=_log_context(connection))
        await connection.send_json(error_frame(exc.reason, exc.message))
        return

    manager.register(
        connection, user_id=session.user_id, role=session.role, username=session.username
    )
    logger.info("Socket authenticated", extra=_log_context(connection))
    await connection.send_json(
        server_frame(
            "authenticated",
            {"user_id": session.user_id, "username": session.username, "role": session.role.value},
        )
    )


async def _handle_join(
    manager: ConnectionManager, connection: ClientConnection, event: JoinTicketEvent
) -> None:
    ticket_id = event.data.ticket_id
    try:
        await anyio.to_thread.run_sync(_check_ticket_access, connection, ticket_id)
    except HelpdeskError as exc:
        logger.info("Ticket join refused: %s", exc.reason, extra=_log_context(connection, ticket_id))
        await connection.send_json(error_frame(exc.reason, exc.message))
        return

    manager.join_ticket(connection, ticket_id)
    logger.debug("Joined ticket channel", extra=_log_context(connection, ticket_id))
    await connection.send_json(server_frame("joined_ticket", {"ticket_id": ticket_id}))


async def _handle_leave(
    manager: ConnectionManager, connection: ClientConnection, event: LeaveTicketEvent
) -> None:
    ticket_id = event.data.ticket_id
    manager.leave_ticket(connection, ticket_id)
    logger.debug("Left ticket channel", extra=_log_context(connection, ticket_id))
    await connection.send_json(server_frame("left_ticket", {"ticket_id": ticket_id}))


async def _handle_typing(
    manager: ConnectionManager, connection: ClientConnection, event: TypingEvent
) -> None:
    ticket_id = event.data.ticket_id
    if ticket_id not in connection.ticket_ids:
        await connection.send_json(error_frame("not_joined", "Join the ticket before typing"))
        return
    await manager.send_to_ticket(
        ticket_id,
        server_frame(
            "user_typing",
            {
                "ticket_id": ticket_id,
                "user_id": connection.user_id,
                "username": connection.username,
                "is_typing": event.data.is_typing,
            },
        ),
        exclude=connection,
    )


async def dispatch(manager: ConnectionManager, connection: ClientConnection, raw: str) -> None:
    """Parse one client frame and run its handler."""
    try:
        event = client_event_adapter.validate_json(raw)
    except PydanticValidationError:
        await connection.send_json(error_frame("invalid_event", "Malformed or unknown event"))
        return

    if isinstance(event, AuthenticateEvent):
        await _handle_authenticate(manager, connection, event)
        return

    if not connection.is_authenticated:
        await connection.send_json(error_frame("unauthenticated", "Authenticate first"))
        return

    if isinstance(event, JoinTicketEvent):
        await _handle_join(manager, connection, event)
    elif isinstance(event, LeaveTicketEvent):
        await _handle_leave(manager, connection, event)
    elif isinstance(event, TypingEvent):
        await _handle_typing(manager, connection, event)
    elif isinstance(event, PingEvent):
        await connection.send_json(server_frame("pong"))


# =============================================================================
# Endpoint
# =============================================================================


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Realtime channel. Authentication happens in-band, not at connect time."""
    origin = websocket.headers.get("origin")
    if not _origin_is_allowed(origin, allowed=set(settings.cors_origins_list), is_dev=settings.is_dev):
        await websocket.close(code=4003, reason="Origin not allowed")
        return

    manager: ConnectionManager = websocket.app.state.connections
    connection = await manager.connect(websocket)
    logger.info("Socket connected", extra=_log_context(connection))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                # Frames are JSON text; binary frames are refused
                await connection.send_json(error_frame("invalid_event", "Frames must be JSON text"))
                continue
            await dispatch(manager, connection, raw)
    finally:
        manager.unregister(connection)
        logger.info("Socket disconnected", extra=_log_context(connection))
