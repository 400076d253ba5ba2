"""Shared column types and defaults."""

from datetime import datetime, timezone

from sqlalchemy import Enum


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def enum_type(enum_cls, *, name: str) -> Enum:
    """Bind Python str-enums to their persisted value strings (CHECK-enforced)."""
    return Enum(
        enum_cls,
        name=name,
        create_constraint=True,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )
