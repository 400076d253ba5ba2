"""Role sets used by authorization checks."""

from helpdesk.db.enums.auth import Role
from helpdesk.db.enums.ticketing import TicketStatus

# Roles allowed to triage: change status/assignee, post internal messages
STAFF_ROLES = frozenset({Role.TECHNICIAN, Role.ADMIN})

# Roles allowed to hard delete tickets and manage users
ROLES_CAN_HARD_DELETE = frozenset({Role.ADMIN})
ROLES_CAN_MANAGE_USERS = frozenset({Role.ADMIN})

# Entering one of these stamps closed_at (once)
CLOSED_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})

# Ticket fields only staff may change
STAFF_ONLY_TICKET_FIELDS = frozenset({"status", "assignee_id", "internal_notes"})
