"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema rebuilt for every test
- Users for each role plus JWT tokens
- HTTPX AsyncClient per role (Bearer auth)
- A recording fanout to assert realtime events
"""
import os
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "dev"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_SECRET_PREVIOUS"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["DEV_SECRET"] = "test-dev-secret"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from helpdesk.main import app
from helpdesk.db.base import Base
from helpdesk.db.session import engine, SessionLocal
from helpdesk.core.deps import get_db, get_fanout, session_for
from helpdesk.core.security import create_session_token
from helpdesk.db.enums import Role
from helpdesk.db.models import User
from helpdesk.schemas.auth import UserSession
from helpdesk.services.realtime_events import EventBatch

from factories import make_user


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    App code commits freely; dropping the tables afterwards isolates tests.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def requester(db: Session) -> User:
    return make_user(db, "rosa", Role.REQUESTER)


@pytest.fixture(scope="function")
def other_requester(db: Session) -> User:
    return make_user(db, "oscar", Role.REQUESTER)


@pytest.fixture(scope="function")
def technician(db: Session) -> User:
    return make_user(db, "tomas", Role.TECHNICIAN)


@pytest.fixture(scope="function")
def other_technician(db: Session) -> User:
    return make_user(db, "teresa", Role.TECHNICIAN)


@pytest.fixture(scope="function")
def admin(db: Session) -> User:
    return make_user(db, "ana", Role.ADMIN)


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    __test__ = False

    user: User
    session: UserSession
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def auth_for(user: User) -> TestAuth:
    token = create_session_token(user_id=user.id, role=user.role.value)
    return TestAuth(user=user, session=session_for(user), token=token)


@pytest.fixture
def events() -> EventBatch:
    return EventBatch()


# =============================================================================
# Client Fixtures
# =============================================================================

class RecordingFanout:
    """Collects published batches instead of delivering them."""

    def __init__(self):
        self.batches: list[EventBatch] = []

    async def publish(self, batch: EventBatch) -> None:
        self.batches.append(batch)

    @property
    def events(self):
        return [event for batch in self.batches for event in batch.events]

    def of_type(self, event_type: str):
        return [event for event in self.events if event.type == event_type]


@pytest.fixture(scope="function")
def fanout() -> RecordingFanout:
    return RecordingFanout()


@pytest.fixture(scope="function")
async def client(db: Session, fanout: RecordingFanout) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient without credentials; pass ``headers=auth.headers`` per request.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fanout] = lambda: fanout

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def requester_auth(requester: User) -> TestAuth:
    return auth_for(requester)


@pytest.fixture
def other_requester_auth(other_requester: User) -> TestAuth:
    return auth_for(other_requester)


@pytest.fixture
def technician_auth(technician: User) -> TestAuth:
    return auth_for(technician)


@pytest.fixture
def other_technician_auth(other_technician: User) -> TestAuth:
    return auth_for(other_technician)


@pytest.fixture
def admin_auth(admin: User) -> TestAuth:
    return auth_for(admin)
