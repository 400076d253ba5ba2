"""
WebSocket connection manager for realtime ticket and chat updates.

Tracks every open connection, which user each authenticated connection
belongs to (a user may have several tabs/devices), and which ticket channels
it joined. One instance is owned by the application (``app.state``).

All methods are called from the event loop thread only, so the registry
needs no lock.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Iterable
from uuid import uuid4

from fastapi import WebSocket

from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import STAFF_ROLES, Role

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Per-connection lifecycle."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class ClientConnection:
    """One live websocket and what it is subscribed to."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None):
        self.websocket = websocket
        self.id = connection_id or uuid4().hex
        self.state = ConnectionState.UNAUTHENTICATED
        self.user_id: int | None = None
        self.username: str | None = None
        self.role: Role | None = None
        self.ticket_ids: set[int] = set()

    @property
    def is_authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    async def send_json(self, message: dict[str, Any]) -> None:
        await self.websocket.send_text(json.dumps(message, default=str))

    def __repr__(self) -> str:
        return f"<ClientConnection {self.id} user={self.user_id} state={self.state.value}>"


class ConnectionManager:
    """Registry of connections by user and by ticket channel."""

    def __init__(self):
        # connection_id -> connection (every open socket, authenticated or not)
        self._connections: dict[str, ClientConnection] = {}
        # user_id -> connection ids (the user's private channel)
        self._user_connections: dict[int, set[str]] = {}
        # ticket_id -> connection ids (ticket channels)
        self._ticket_connections: dict[int, set[str]] = {}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> ClientConnection:
        """Accept a websocket and track it as unauthenticated."""
        await websocket.accept()
        connection = ClientConnection(websocket)
        self._connections[connection.id] = connection
        return connection

    def register(
        self,
        connection: ClientConnection,
        *,
        user_id: int,
        role: Role,
        username: str | None = None,
    ) -> None:
        """Mark a connection authenticated and join its user's private channel."""
        if connection.is_authenticated and connection.user_id != user_id:
            # Re-authenticating as someone else: drop the previous identity first
            self._remove_from_user(connection)
            self._leave_all_tickets(connection)
        connection.state = ConnectionState.AUTHENTICATED
        connection.user_id = user_id
        connection.role = role
        connection.username = username
        self._connections[connection.id] = connection
        self._user_connections.setdefault(user_id, set()).add(connection.id)

    def unregister(self, connection: ClientConnection) -> None:
        """Forget a connection entirely (disconnect or failed send)."""
        self._connections.pop(connection.id, None)
        self._remove_from_user(connection)
        self._leave_all_tickets(connection)
        connection.state = ConnectionState.CLOSED

    def join_ticket(self, connection: ClientConnection, ticket_id: int) -> None:
        self._ticket_connections.setdefault(ticket_id, set()).add(connection.id)
        connection.ticket_ids.add(ticket_id)

    def leave_ticket(self, connection: ClientConnection, ticket_id: int) -> None:
        members = self._ticket_connections.get(ticket_id)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self._ticket_connections[ticket_id]
        connection.ticket_ids.discard(ticket_id)

    def update_role(self, user_id: int, role: Role) -> list[ClientConnection]:
        """
        Apply a role change to a user's live connections.

        A connection that loses staff rights leaves every ticket channel; the
        client has to join again, which re-checks ticket visibility.
        """
        affected = self.connections_for_user(user_id)
        for connection in affected:
            was_staff = connection.is_staff
            connection.role = role
            if was_staff and not connection.is_staff:
                self._leave_all_tickets(connection)
        return affected

    def deauthenticate_user(self, user_id: int) -> list[ClientConnection]:
        """Return a user's connections to the unauthenticated state."""
        affected = self.connections_for_user(user_id)
        for connection in affected:
            self._remove_from_user(connection)
            self._leave_all_tickets(connection)
            connection.state = ConnectionState.UNAUTHENTICATED
            connection.user_id = None
            connection.username = None
            connection.role = None
        return affected

    def revoke_ticket(self, user_id: int, ticket_id: int) -> int:
        """Remove a user's connections from one ticket channel."""
        removed = 0
        for connection in self.connections_for_user(user_id):
            if ticket_id in connection.ticket_ids:
                self.leave_ticket(connection, ticket_id)
                removed += 1
        return removed

    def _remove_from_user(self, connection: ClientConnection) -> None:
        if connection.user_id is None:
            return
        ids = self._user_connections.get(connection.user_id)
        if ids is not None:
            ids.discard(connection.id)
            if not ids:
                del self._user_connections[connection.user_id]

    def _leave_all_tickets(self, connection: ClientConnection) -> None:
        for ticket_id in list(connection.ticket_ids):
            self.leave_ticket(connection, ticket_id)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def connections_for_user(self, user_id: int) -> list[ClientConnection]:
        """Active connections for a user (empty when offline)."""
        return self._resolve(self._user_connections.get(user_id, ()))

    lookup = connections_for_user

    def ticket_members(self, ticket_id: int) -> list[ClientConnection]:
        return self._resolve(self._ticket_connections.get(ticket_id, ()))

    def is_online(self, user_id: int) -> bool:
        return bool(self._user_connections.get(user_id))

    def get_total_connections(self) -> int:
        """Get total number of open connections (authenticated or not)."""
        return len(self._connections)

    def _resolve(self, ids: Iterable[str]) -> list[ClientConnection]:
        return [self._connections[cid] for cid in list(ids) if cid in self._connections]

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send to every authenticated connection."""
        targets = [c for c in self._connections.values() if c.is_authenticated]
        return await self._deliver(targets, message)

    async def send_to_ticket(
        self,
        ticket_id: int,
        message: dict[str, Any],
        *,
        exclude: ClientConnection | None = None,
        staff_only: bool = False,
    ) -> int:
        """Send to connections joined to a ticket channel."""
        targets = [
            c
            for c in self.ticket_members(ticket_id)
            if c is not exclude and (c.is_staff or not staff_only)
        ]
        return await self._deliver(targets, message)

    async def send_to_user(self, user_id: int, message: dict[str, Any]) -> int:
        """Send to all connections of one user. Offline users get nothing."""
        targets = self.connections_for_user(user_id)
        if not targets:
            logger.debug(
                "Dropping %s for offline user",
                message.get("type"),
                extra=build_log_context(user_id=str(user_id)),
            )
            return 0
        return await self._deliver(targets, message)

    async def _deliver(self, targets: list[ClientConnection], message: dict[str, Any]) -> int:
        if not targets:
            return 0

        data = json.dumps(message, default=str)
        delivered = 0
        closed: list[ClientConnection] = []

        for connection in targets:
            try:
                await connection.websocket.send_text(data)
                delivered += 1
            except Exception:
                # Connection closed or errored
                closed.append(connection)

        for connection in closed:
            logger.info(
                "Dropping dead connection",
                extra=build_log_context(
                    user_id=str(connection.user_id) if connection.user_id else None,
                    connection_id=connection.id,
                ),
            )
            self.unregister(connection)

        return delivered
