"""Ticket and chat access policies.

Pure decision functions: no I/O, no side effects, never raise. Callers turn
``False`` into an ``AuthorizationError``.

The ``actor`` is anything with ``user_id`` and ``role`` (normally a
``UserSession``); tickets/messages are ORM rows or any object with the same
attribute names.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

from sqlalchemy import false, or_, true

from helpdesk.db.enums import ROLES_CAN_HARD_DELETE, STAFF_ONLY_TICKET_FIELDS, STAFF_ROLES, Role


class Actor(Protocol):
    user_id: int
    role: Role


def _is_staff(actor: Actor) -> bool:
    return actor.role in STAFF_ROLES


def can_view_ticket(actor: Actor, ticket: Any) -> bool:
    """Admins see everything; technicians see unassigned or their own
    assignments; requesters see tickets they opened or are assigned to."""
    if actor.role == Role.ADMIN:
        return True
    if actor.role == Role.TECHNICIAN:
        return ticket.assignee_id is None or ticket.assignee_id == actor.user_id
    if actor.role == Role.REQUESTER:
        return ticket.requester_id == actor.user_id or ticket.assignee_id == actor.user_id
    return False


def can_edit_ticket(actor: Actor, ticket: Any, fields: Iterable[str]) -> bool:
    """Staff may edit any field; requesters only non-staff fields of their own tickets."""
    if _is_staff(actor):
        return True
    if actor.role != Role.REQUESTER or ticket.requester_id != actor.user_id:
        return False
    return not (set(fields) & STAFF_ONLY_TICKET_FIELDS)


def can_delete_ticket(actor: Actor) -> bool:
    return actor.role in ROLES_CAN_HARD_DELETE


def can_view_message(actor: Actor, ticket: Any, message: Any) -> bool:
    if not can_view_ticket(actor, ticket):
        return False
    if message.is_internal:
        return _is_staff(actor)
    return True


def can_post_message(actor: Actor, ticket: Any, requested_internal: bool) -> tuple[bool, bool]:
    """
    Decide whether ``actor`` may post on ``ticket``.

    Returns:
        (allowed, effective_internal). Requester messages are always public.
    """
    if not can_view_ticket(actor, ticket):
        return False, False
    if _is_staff(actor):
        return True, bool(requested_internal)
    return True, False


def can_edit_or_delete_message(actor: Actor, message: Any, ticket: Any) -> bool:
    """Author, any admin, or the technician assigned to the ticket."""
    if message.author_id == actor.user_id:
        return True
    if actor.role == Role.ADMIN:
        return True
    return actor.role == Role.TECHNICIAN and ticket.assignee_id == actor.user_id


def ticket_scope_filter(actor: Actor, ticket_model: Any):
    """
    SQL criterion narrowing ticket queries by role.

    Applied before any user-supplied filter by listing and stats. Requesters
    list only the tickets they opened, even though ``can_view_ticket`` also
    lets them open a ticket they were assigned to.
    """
    if actor.role == Role.ADMIN:
        return true()
    if actor.role == Role.TECHNICIAN:
        return or_(ticket_model.assignee_id == actor.user_id, ticket_model.assignee_id.is_(None))
    if actor.role == Role.REQUESTER:
        return ticket_model.requester_id == actor.user_id
    return false()
