"""
Test configuration and fixtures for task manager tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database and notifier dependency overrides
- Authentication helpers (tokens issued through the session service)
- Common fixtures for users and tasks
"""

import os
import sys
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generator

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REMINDER_JOB_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-entropy-0123456789")

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import models
from database import Base, get_db
from main import app
from notifications import Notifier, get_notifier
from services.accounts import create_user
from services.sessions import issue_token

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

STRONG_PASSWORD = "Passw0rd@123"
OTHER_STRONG_PASSWORD = "N3wPassw0rd!"


class RecordingPushSender:
    """Stands in for PushDispatcher; records instead of calling the push API."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, device_address: str, title: str, body: str) -> bool:
        self.sent.append({"to": device_address, "title": title, "body": body})
        return not self.fail


class RecordingMailer:
    """Stands in for EmailSender; records instead of talking SMTP."""

    def __init__(self):
        self.sent = []

    def send(self, to_addr: str, subject: str, html_body: str) -> bool:
        self.sent.append({"to": to_addr, "subject": subject, "body": html_body})
        return True


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def push_sender() -> RecordingPushSender:
    return RecordingPushSender()


@pytest.fixture(scope="function")
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture(scope="function")
def client(test_db: Session, push_sender: RecordingPushSender, mailer: RecordingMailer) -> TestClient:
    """
    Create FastAPI test client with database and notifier dependency overrides.

    Notifications are delivered inline to the recording senders so tests can
    assert on them right after the request returns.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    def override_get_notifier():
        return Notifier(push_sender=push_sender, mailer=mailer)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = override_get_notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def make_user(test_db: Session) -> Callable[..., models.User]:
    """Factory creating users through the credential store."""
    def _make_user(
        email: str,
        full_name: str = "Test User",
        password: str = STRONG_PASSWORD,
        push_token: str = None,
    ) -> models.User:
        user = create_user(test_db, full_name, email, password, push_token=push_token)
        logger.info(f"Created user {email} with ID: {user.id}")
        return user

    return _make_user


@pytest.fixture(scope="function")
def regular_user(make_user) -> models.User:
    return make_user("user@test.com", full_name="Regular User", push_token="device-regular")


@pytest.fixture(scope="function")
def another_user(make_user) -> models.User:
    return make_user("another@test.com", full_name="Another User", push_token="device-another")


@pytest.fixture(scope="function")
def login_headers(test_db: Session) -> Callable[[models.User], Dict[str, str]]:
    """Issue an active token for a user and return bearer headers for it."""
    def _login_headers(user: models.User) -> Dict[str, str]:
        token = issue_token(test_db, user)
        return {"Authorization": f"Bearer {token}"}

    return _login_headers


@pytest.fixture(scope="function")
def user_auth_headers(regular_user: models.User, login_headers) -> Dict[str, str]:
    return login_headers(regular_user)


@pytest.fixture(scope="function")
def another_user_auth_headers(another_user: models.User, login_headers) -> Dict[str, str]:
    return login_headers(another_user)


@pytest.fixture(scope="function")
def make_task(test_db: Session) -> Callable[..., models.Task]:
    """Factory inserting tasks directly, optionally assigned and parented."""
    def _make_task(
        title: str = "Write report",
        assignee: models.User = None,
        parent: models.Task = None,
        due_date: datetime = None,
        **fields,
    ) -> models.Task:
        task = models.Task(
            title=title,
            description=fields.pop("description", None),
            due_date=due_date or datetime.now(timezone.utc) + timedelta(days=3),
            priority=fields.pop("priority", models.TaskPriority.Medium),
            status=fields.pop("status", models.TaskStatus.todo),
            category=fields.pop("category", models.TaskCategory.Work),
            user_id=assignee.id if assignee else None,
            parent_task_id=parent.id if parent else None,
            created_by=assignee.id if assignee else None,
            **fields,
        )
        test_db.add(task)
        test_db.commit()
        test_db.refresh(task)
        return task

    return _make_task


@pytest.fixture(scope="function")
def owned_task(make_task, regular_user: models.User) -> models.Task:
    return make_task("Owned task", assignee=regular_user)
