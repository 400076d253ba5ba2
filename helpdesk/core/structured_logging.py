"""Structured logging helpers."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once (no-op if handlers already exist)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def build_log_context(
    *,
    user_id: str | None = None,
    ticket_id: str | None = None,
    connection_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict with only the provided fields.

    Never include message bodies, emails or password material.
    """
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if ticket_id:
        context["ticket_id"] = ticket_id
    if connection_id:
        context["connection_id"] = connection_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
