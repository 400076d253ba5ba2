"""SQLAlchemy ORM models."""

from helpdesk.db.models.auth import User
from helpdesk.db.models.ticketing import ChatMessage, Ticket

__all__ = ["ChatMessage", "Ticket", "User"]
