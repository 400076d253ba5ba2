"""Telegram notifications (outbound only).

Runs as handlers of the outbound queue, never on the request path. Staff
users opt in by having a ``telegram_chat_id``. Without TELEGRAM_BOT_TOKEN
every handler is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import anyio
import httpx
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.outbound import OutboundHandler
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.enums import STAFF_ROLES
from helpdesk.db.models import User
from helpdesk.db.session import SessionLocal
from helpdesk.services.realtime_events import OUTBOUND_TICKET_ASSIGNED, OUTBOUND_TICKET_CREATED

logger = logging.getLogger(__name__)

RETRY_STATUSES = {429, 500, 502, 503, 504}
DESCRIPTION_PREVIEW_CHARS = 100


def format_new_ticket(ticket: dict[str, Any], frontend_url: str) -> str:
    requester = (ticket.get("requester") or {}).get("username", "unknown")
    return (
        f"🎫 *New ticket #{ticket['id']}*\n\n"
        f"*Requester:* {requester}\n"
        f"*Title:* {ticket['name']}\n"
        f"*Department:* {ticket['department']}\n"
        f"*Location:* Floor {ticket['floor']}, {ticket['office']}\n"
        f"*Priority:* {ticket['priority']}\n"
        f"*Status:* {ticket['status']}\n\n"
        f"*Description:*\n{ticket['description']}\n\n"
        f"[Open ticket]({frontend_url}/tickets/{ticket['id']})"
    )


def format_assignment(ticket: dict[str, Any], frontend_url: str) -> str:
    description = ticket["description"]
    if len(description) > DESCRIPTION_PREVIEW_CHARS:
        description = description[:DESCRIPTION_PREVIEW_CHARS] + "..."
    return (
        "📌 *You have been assigned a ticket*\n\n"
        f"Ticket #{ticket['id']} - {ticket['priority']}\n"
        f"📝 {description}\n\n"
        f"[Open ticket]({frontend_url}/tickets/{ticket['id']})"
    )


class TelegramNotifier:
    """Sends Bot API ``sendMessage`` calls for ticket events."""

    def __init__(
        self,
        *,
        token: str | None = None,
        api_base: str | None = None,
        frontend_url: str | None = None,
        timeout: float | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        transport: httpx.AsyncBaseTransport | None = None,
        max_attempts: int = 3,
        base_delay: float = 0.5,
    ):
        self.token = settings.TELEGRAM_BOT_TOKEN if token is None else token
        self.api_base = (api_base or settings.TELEGRAM_API_BASE).rstrip("/")
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip("/")
        self.timeout = timeout or settings.TELEGRAM_TIMEOUT_SECONDS
        self.session_factory = session_factory
        self.transport = transport
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def handlers(self) -> dict[str, OutboundHandler]:
        """Outbound queue registrations."""
        return {
            OUTBOUND_TICKET_CREATED: self.notify_new_ticket,
            OUTBOUND_TICKET_ASSIGNED: self.notify_assigned,
        }

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def notify_new_ticket(self, ticket: dict[str, Any]) -> None:
        if not self.enabled:
            return
        chat_ids = await anyio.to_thread.run_sync(self._staff_chat_ids)
        if not chat_ids:
            return
        text = format_new_ticket(ticket, self.frontend_url)
        async with self._client() as client:
            for chat_id in chat_ids:
                await self._send_quietly(client, chat_id, text, ticket_id=ticket["id"])

    async def notify_assigned(self, ticket: dict[str, Any]) -> None:
        assignee_id = ticket.get("assignee_id")
        if not self.enabled or not assignee_id:
            return
        chat_id = await anyio.to_thread.run_sync(self._user_chat_id, assignee_id)
        if not chat_id:
            return
        text = format_assignment(ticket, self.frontend_url)
        async with self._client() as client:
            await self._send_quietly(client, chat_id, text, ticket_id=ticket["id"])

    # -------------------------------------------------------------------------
    # Bot API
    # -------------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def send_message(self, client: httpx.AsyncClient, chat_id: str, text: str) -> None:
        """POST sendMessage with backoff on transport errors and 429/5xx."""
        url = f"{self.api_base}/bot{self.token}/sendMessage"
        body = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }
        for attempt in range(self.max_attempts):
            last_attempt = attempt >= self.max_attempts - 1
            try:
                response = await client.post(url, json=body)
            except httpx.RequestError:
                if last_attempt:
                    raise
                logger.warning("Telegram request failed, retrying")
                await asyncio.sleep(self.base_delay * (2**attempt))
                continue

            if response.status_code in RETRY_STATUSES and not last_attempt:
                logger.warning("Telegram returned %s, retrying", response.status_code)
                await asyncio.sleep(self.base_delay * (2**attempt))
                continue

            response.raise_for_status()
            return

    async def _send_quietly(
        self, client: httpx.AsyncClient, chat_id: str, text: str, *, ticket_id: int
    ) -> None:
        # One bad chat id must not stop delivery to the others
        try:
            await self.send_message(client, chat_id, text)
        except httpx.HTTPError as exc:
            logger.error(
                "Telegram sendMessage failed: %s",
                type(exc).__name__,
                extra=build_log_context(ticket_id=str(ticket_id)),
            )

    # -------------------------------------------------------------------------
    # Recipients (run in a worker thread)
    # -------------------------------------------------------------------------

    def _staff_chat_ids(self) -> list[str]:
        db = self.session_factory()
        try:
            rows = (
                db.query(User.telegram_chat_id)
                .filter(
                    User.role.in_(list(STAFF_ROLES)),
                    User.is_active.is_(True),
                    User.telegram_chat_id.isnot(None),
                )
                .order_by(User.id)
                .all()
            )
            return [chat_id for (chat_id,) in rows if chat_id]
        finally:
            db.close()

    def _user_chat_id(self, user_id: int) -> str | None:
        db = self.session_factory()
        try:
            user = db.get(User, user_id)
            if not user or not user.is_active:
                return None
            return user.telegram_chat_id
        finally:
            db.close()
