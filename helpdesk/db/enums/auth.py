"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    Values are the persisted vocabulary.

    - REQUESTER: opens tickets for their own issues
    - TECHNICIAN: can be assigned tickets and post internal notes
    - ADMIN: full control, including deletion
    """

    REQUESTER = "usuario"
    TECHNICIAN = "tecnico"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
