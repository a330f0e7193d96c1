"""
Test configuration and fixtures for taskboard tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users, tasks and the upload directory
"""

import os
import sys
import logging
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Generator, Dict, List, Optional

# Environment must be set before the application modules are imported
_STARTUP_DIR = tempfile.mkdtemp(prefix="taskboard-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_STARTUP_DIR, 'startup.db')}")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_STARTUP_DIR, "uploads"))
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-taskboard-tests-only")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from attachments import storage
from auth.security import hash_password, create_access_token

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"


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
def upload_dir(tmp_path, monkeypatch):
    """Point attachment storage at a per-test directory."""
    directory = tmp_path / "uploads"
    directory.mkdir()
    monkeypatch.setattr(storage, "UPLOAD_DIR", directory)
    return directory


@pytest.fixture(scope="function")
def client(test_db: Session, upload_dir) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_user(
    db: Session,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: str = "user",
    is_active: bool = True,
) -> models.User:
    user = models.User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def admin_user(test_db: Session) -> models.User:
    """
    Create an admin user for testing.
    """
    logger.debug("Creating admin user")
    user = _create_user(test_db, "Admin", "User", "admin@test.com", "admin123", role="admin")
    logger.info(f"Created admin user with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def regular_user(test_db: Session) -> models.User:
    """
    Create a regular user for testing.
    """
    logger.debug("Creating regular user")
    user = _create_user(test_db, "Regular", "User", "user@test.com", "user123")
    logger.info(f"Created regular user with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def another_user(test_db: Session) -> models.User:
    """
    Create another user for testing multi-user scenarios.
    """
    logger.debug("Creating another user")
    user = _create_user(test_db, "Another", "User", "another@test.com", "another123")
    logger.info(f"Created another user with ID: {user.id}")
    return user


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    token_data = {
        "sub": str(user.id),
        "role": user.role,
        "email": user.email
    }
    return create_access_token(token_data, expires_delta)


def bearer(user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(user)}"}


def make_task(
    db: Session,
    created_by: models.User,
    assigned_to: Optional[models.User] = None,
    title: str = "Test Task",
    description: str = "",
    status: models.TaskStatus = models.TaskStatus.pending,
    priority: models.TaskPriority = models.TaskPriority.medium,
    due_date: Optional[datetime] = None,
    tags: Optional[List[str]] = None,
) -> models.Task:
    """Insert a task row directly, bypassing the API."""
    task = models.Task(
        title=title,
        description=description,
        status=status,
        priority=priority,
        due_date=due_date or datetime.now(timezone.utc) + timedelta(days=7),
        tags=tags or [],
        assigned_to_id=assigned_to.id if assigned_to else None,
        created_by_id=created_by.id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def attach_file(
    db: Session,
    task: models.Task,
    directory,
    original_name: str = "notes.txt",
    content: bytes = b"hello attachment",
    mimetype: str = "text/plain",
) -> models.TaskAttachment:
    """Write a file into the upload directory and record it on the task."""
    filename = f"{models.new_id()}{os.path.splitext(original_name)[1]}"
    (directory / filename).write_bytes(content)
    attachment = models.TaskAttachment(
        task_id=task.id,
        filename=filename,
        original_name=original_name,
        size=len(content),
        mimetype=mimetype,
    )
    db.add(attachment)
    db.commit()
    db.refresh(attachment)
    db.refresh(task)
    return attachment


@pytest.fixture(scope="function")
def auth_headers(admin_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers with admin token.
    """
    return bearer(admin_user)


@pytest.fixture(scope="function")
def user_auth_headers(regular_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers for regular user.
    """
    return bearer(regular_user)


@pytest.fixture(scope="function")
def another_user_auth_headers(another_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers for another user.
    """
    return bearer(another_user)
