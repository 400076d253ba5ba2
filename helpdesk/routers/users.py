"""User administration endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from helpdesk.core.deps import get_db, get_fanout, require_roles
from helpdesk.db.enums import ROLES_CAN_MANAGE_USERS, STAFF_ROLES, Role
from helpdesk.schemas.auth import UserRead, UserSession, UserUpdate
from helpdesk.services import user_service
from helpdesk.services.realtime_events import EventBatch, RealtimeFanout

router = APIRouter()


@router.get("", response_model=list[UserRead])
def list_users(
    role: Role | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(list(STAFF_ROLES))),
):
    """List users (staff only), e.g. ``?role=tecnico`` for assignment pickers."""
    return user_service.list_users(db, role=role, active_only=active_only)


@router.patch("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    data: UserUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(list(ROLES_CAN_MANAGE_USERS))),
    fanout: RealtimeFanout = Depends(get_fanout),
):
    """Change role, active flag or Telegram chat id (admin only)."""
    events = EventBatch()
    user = user_service.update_user(db, actor=session, user_id=user_id, data=data, events=events)
    if not events.is_empty:
        background_tasks.add_task(fanout.publish, events)
    return user
