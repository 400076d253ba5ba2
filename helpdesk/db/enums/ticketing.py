"""Ticket vocabularies.

These are stored verbatim; any other value is rejected by the schemas and
by the column CHECK constraints.
"""

from enum import Enum


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    NEW = "Nuevo"
    IN_PROGRESS = "En Progreso"
    RESOLVED = "Resuelto"
    CLOSED = "Cerrado"


class TicketPriority(str, Enum):
    """Ticket priority level."""

    LOW = "Baja"
    MEDIUM = "Media"
    HIGH = "Alta"
    URGENT = "Urgente"


class Department(str, Enum):
    """Department the requester belongs to."""

    IT = "IT"
    HR = "RRHH"
    FINANCE = "Finanzas"
    OPERATIONS = "Operaciones"
