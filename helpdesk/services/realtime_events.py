"""Realtime domain events (side-effect dispatch).

Services never talk to sockets directly. They record what happened in an
``EventBatch``; the router hands the batch to ``RealtimeFanout.publish`` as a
background task once the response is sent, so delivery never delays or fails
the mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from helpdesk.core.outbound import OutboundJob, OutboundQueue
from helpdesk.core.structured_logging import build_log_context
from helpdesk.core.websocket import ConnectionManager
from helpdesk.db.enums import Role
from helpdesk.schemas.realtime import error_frame

logger = logging.getLogger(__name__)


# Server -> client event types
TICKET_CREATED = "ticket:created"
TICKET_UPDATED = "ticket:updated"
TICKET_DELETED = "ticket:deleted"
TICKET_ASSIGNED = "ticket:assigned"
MESSAGE_POSTED = "chat:new_message"
MESSAGE_UPDATED = "chat:message_updated"
MESSAGE_DELETED = "chat:message_deleted"
CHAT_NOTIFICATION = "chat:notification"

# Outbound (Telegram) job kinds
OUTBOUND_TICKET_CREATED = "ticket_created"
OUTBOUND_TICKET_ASSIGNED = "ticket_assigned"


class Audience(str, Enum):
    BROADCAST = "broadcast"
    TICKET = "ticket"
    USER = "user"


@dataclass(frozen=True)
class RealtimeEvent:
    """One server -> client frame plus who should receive it."""

    type: str
    data: dict[str, Any]
    audience: Audience
    ticket_id: int | None = None
    user_id: int | None = None
    staff_only: bool = False

    def message(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


@dataclass(frozen=True)
class AccessChange:
    """A permission change to re-apply to a user's live connections."""

    user_id: int
    role: Role | None = None
    is_active: bool = True
    # Set when only one ticket channel is revoked
    ticket_id: int | None = None


@dataclass
class EventBatch:
    """Events, access changes and outbound jobs produced by one request, in emission order."""

    events: list[RealtimeEvent] = field(default_factory=list)
    outbound: list[OutboundJob] = field(default_factory=list)
    access: list[AccessChange] = field(default_factory=list)

    def emit(self, event: RealtimeEvent) -> None:
        self.events.append(event)

    def enqueue(self, job: OutboundJob) -> None:
        self.outbound.append(job)

    def restrict(self, change: AccessChange) -> None:
        self.access.append(change)

    def of_type(self, event_type: str) -> list[RealtimeEvent]:
        return [e for e in self.events if e.type == event_type]

    @property
    def is_empty(self) -> bool:
        return not self.events and not self.outbound and not self.access


# =============================================================================
# Event constructors
# =============================================================================


def ticket_created(ticket: dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(TICKET_CREATED, ticket, Audience.BROADCAST, ticket_id=ticket["id"])


def ticket_updated(ticket: dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(TICKET_UPDATED, ticket, Audience.BROADCAST, ticket_id=ticket["id"])


def ticket_deleted(ticket_id: int) -> RealtimeEvent:
    return RealtimeEvent(TICKET_DELETED, {"id": ticket_id}, Audience.BROADCAST, ticket_id=ticket_id)


def ticket_assigned(assignee_id: int, ticket: dict[str, Any], *, assigned_by: str) -> RealtimeEvent:
    return RealtimeEvent(
        TICKET_ASSIGNED,
        {
            "ticket_id": ticket["id"],
            "ticket": ticket,
            "assigned_by": assigned_by,
            "message": f"Ticket #{ticket['id']} has been assigned to you",
        },
        Audience.USER,
        ticket_id=ticket["id"],
        user_id=assignee_id,
    )


def message_posted(message: dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(
        MESSAGE_POSTED,
        message,
        Audience.TICKET,
        ticket_id=message["ticket_id"],
        staff_only=bool(message.get("is_internal")),
    )


def message_updated(message: dict[str, Any]) -> RealtimeEvent:
    return RealtimeEvent(
        MESSAGE_UPDATED,
        {
            "id": message["id"],
            "ticket_id": message["ticket_id"],
            "message": message["message"],
            "updated_at": message["updated_at"],
        },
        Audience.TICKET,
        ticket_id=message["ticket_id"],
        staff_only=bool(message.get("is_internal")),
    )


def message_deleted(message_id: int, ticket_id: int, *, is_internal: bool) -> RealtimeEvent:
    return RealtimeEvent(
        MESSAGE_DELETED,
        {"id": message_id, "ticket_id": ticket_id},
        Audience.TICKET,
        ticket_id=ticket_id,
        staff_only=is_internal,
    )


def chat_notification(recipient_id: int, *, ticket_id: int, sender: str) -> RealtimeEvent:
    return RealtimeEvent(
        CHAT_NOTIFICATION,
        {
            "ticket_id": ticket_id,
            "message": f"New message on ticket #{ticket_id}",
            "from": sender,
        },
        Audience.USER,
        ticket_id=ticket_id,
        user_id=recipient_id,
    )


def user_access_changed(user_id: int, *, role: Role, is_active: bool) -> AccessChange:
    return AccessChange(user_id, role=role, is_active=is_active)


def ticket_access_revoked(user_id: int, ticket_id: int) -> AccessChange:
    return AccessChange(user_id, ticket_id=ticket_id)


# =============================================================================
# Fanout
# =============================================================================


class RealtimeFanout:
    """Delivers an ``EventBatch`` to websocket clients and the outbound queue."""

    def __init__(self, connections: ConnectionManager, outbound: OutboundQueue | None = None):
        self.connections = connections
        self.outbound = outbound

    async def deliver(self, event: RealtimeEvent) -> int:
        message = event.message()
        if event.audience == Audience.BROADCAST:
            return await self.connections.broadcast(message)
        if event.audience == Audience.TICKET and event.ticket_id is not None:
            return await self.connections.send_to_ticket(
                event.ticket_id, message, staff_only=event.staff_only
            )
        if event.audience == Audience.USER and event.user_id is not None:
            return await self.connections.send_to_user(event.user_id, message)
        logger.warning("Realtime event %s has no recipient", event.type)
        return 0

    async def apply_access(self, change: AccessChange) -> None:
        if change.ticket_id is not None:
            self.connections.revoke_ticket(change.user_id, change.ticket_id)
            return
        if not change.is_active:
            frame = error_frame("authorization_error", "Account disabled")
            for connection in self.connections.deauthenticate_user(change.user_id):
                await connection.send_json(frame)
            return
        if change.role is not None:
            self.connections.update_role(change.user_id, change.role)

    async def publish(self, batch: EventBatch) -> None:
        """
        Deliver every event in order. Failures are logged, never raised.

        Access changes are applied first so none of the batch's events reach
        a connection that just lost the right to see them.
        """
        for change in batch.access:
            try:
                await self.apply_access(change)
            except Exception:
                logger.exception(
                    "Applying access change failed",
                    extra=build_log_context(user_id=str(change.user_id)),
                )

        for event in batch.events:
            try:
                await self.deliver(event)
            except Exception:
                logger.exception(
                    "Realtime delivery failed for %s",
                    event.type,
                    extra=build_log_context(
                        ticket_id=str(event.ticket_id) if event.ticket_id else None,
                        user_id=str(event.user_id) if event.user_id else None,
                    ),
                )

        if self.outbound is None:
            return
        for job in batch.outbound:
            self.outbound.submit(job)
