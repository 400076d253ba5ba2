"""Development-only endpoints for seeding."""

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from helpdesk.core.config import settings
from helpdesk.core.deps import get_db
from helpdesk.core.errors import AuthorizationError
from helpdesk.services import dev_service

router = APIRouter()


def _verify_dev_secret(x_dev_secret: str = Header(...)):
    """
    Verify dev secret header.

    Provides an extra layer of protection for dev endpoints
    beyond just the ENV check.
    """
    if x_dev_secret != settings.DEV_SECRET:
        raise AuthorizationError("Invalid dev secret")


@router.post("/seed", dependencies=[Depends(_verify_dev_secret)])
def seed_test_data(db: Session = Depends(get_db)):
    """
    Create an admin, a technician and a requester for local development.

    Requires X-Dev-Secret header matching DEV_SECRET env var.
    Idempotent - existing users are reported, not recreated.
    """
    users = dev_service.seed_users(db)
    status = "seeded" if any(u["created"] for u in users) else "already_seeded"
    return {"status": status, "users": users}
