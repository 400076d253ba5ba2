"""Enum definitions for application constants."""

from helpdesk.db.enums.auth import Role
from helpdesk.db.enums.permissions import (
    CLOSED_STATUSES,
    ROLES_CAN_HARD_DELETE,
    ROLES_CAN_MANAGE_USERS,
    STAFF_ONLY_TICKET_FIELDS,
    STAFF_ROLES,
)
from helpdesk.db.enums.ticketing import Department, TicketPriority, TicketStatus

DEFAULT_TICKET_STATUS = TicketStatus.NEW
DEFAULT_TICKET_PRIORITY = TicketPriority.MEDIUM

__all__ = [
    "CLOSED_STATUSES",
    "DEFAULT_TICKET_PRIORITY",
    "DEFAULT_TICKET_STATUS",
    "Department",
    "ROLES_CAN_HARD_DELETE",
    "ROLES_CAN_MANAGE_USERS",
    "Role",
    "STAFF_ONLY_TICKET_FIELDS",
    "STAFF_ROLES",
    "TicketPriority",
    "TicketStatus",
]
