"""Ticket statistics for the dashboard.

Counts use portable SQL aggregates; durations and date buckets are computed
in Python so the same code runs on SQLite and PostgreSQL.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from helpdesk.core import policies
from helpdesk.db.enums import CLOSED_STATUSES, Department, TicketPriority, TicketStatus
from helpdesk.db.models import Ticket
from helpdesk.schemas.auth import UserSession
from helpdesk.schemas.ticketing import TicketStats, TrendPoint

TREND_DAYS = 7
AVERAGE_WINDOW_DAYS = 30


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _grouped_counts(db: Session, scope, column, vocabulary) -> dict[str, int]:
    rows = db.query(column, func.count(Ticket.id)).filter(scope).group_by(column).all()
    counts = {member.value: 0 for member in vocabulary}
    for value, count in rows:
        key = value.value if hasattr(value, "value") else str(value)
        counts[key] = count
    return counts


def get_ticket_stats(
    db: Session,
    *,
    actor: UserSession,
    now: datetime | None = None,
) -> TicketStats:
    """Aggregate tickets the actor may list (same scope as ticket listing)."""
    now = _as_utc(now or datetime.now(timezone.utc))
    scope = policies.ticket_scope_filter(actor, Ticket)

    by_status = _grouped_counts(db, scope, Ticket.status, TicketStatus)
    by_priority = _grouped_counts(db, scope, Ticket.priority, TicketPriority)
    by_department = _grouped_counts(db, scope, Ticket.department, Department)

    # Resolution time
    resolved = (
        db.query(Ticket.created_at, Ticket.closed_at)
        .filter(scope, Ticket.closed_at.isnot(None))
        .all()
    )
    durations = [
        (_as_utc(closed_at) - _as_utc(created_at)).total_seconds() / 3600
        for created_at, closed_at in resolved
    ]
    avg_resolution_hours = round(sum(durations) / len(durations), 2) if durations else 0.0

    # Creation trend
    window_start = now - timedelta(days=AVERAGE_WINDOW_DAYS)
    created = [
        _as_utc(created_at)
        for (created_at,) in db.query(Ticket.created_at)
        .filter(scope, Ticket.created_at >= window_start)
        .all()
    ]
    per_day = Counter(ts.date() for ts in created if ts >= window_start)
    today: date = now.date()
    trend_7d = [
        TrendPoint(date=day.isoformat(), count=per_day.get(day, 0))
        for day in (today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1))
    ]

    return TicketStats(
        total=sum(by_status.values()),
        open=by_status[TicketStatus.NEW.value],
        in_progress=by_status[TicketStatus.IN_PROGRESS.value],
        closed=sum(by_status[s.value] for s in CLOSED_STATUSES),
        by_status=by_status,
        by_priority=by_priority,
        by_department=by_department,
        avg_resolution_hours=avg_resolution_hours,
        trend_7d=trend_7d,
        daily_average_30d=round(sum(per_day.values()) / AVERAGE_WINDOW_DAYS, 2),
    )
