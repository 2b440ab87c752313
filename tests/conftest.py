"""
Pytest configuration and fixtures for AlbumHQ API tests.
"""
import os
from pathlib import Path

# Keep the module-level engine away from the working directory
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from albumhq.config import get_settings
from albumhq.database import Base, get_db, get_session_factory
from albumhq.limiter import limiter
from albumhq.main import app
from albumhq.models.user import User, UserRole
from albumhq.auth import get_password_hash, create_tokens, login_limiter

# Disable rate limiting for tests
limiter.enabled = False

TEST_PASSWORD = "Correct-Horse-42"

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Global session for sharing across requests
_test_session = None


def get_test_db():
    """Get the shared test database session."""
    global _test_session
    try:
        yield _test_session
    finally:
        pass


@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    """Point storage and the heartbeat file at a per-test temp dir."""
    settings = get_settings()
    upload_root = tmp_path / "uploads"
    upload_root.mkdir()
    monkeypatch.setattr(settings, "upload_root", str(upload_root))
    monkeypatch.setattr(settings, "worker_health_file", str(tmp_path / "worker-health.json"))
    monkeypatch.setattr(settings, "run_worker", False)
    login_limiter.reset()
    yield settings
    login_limiter.reset()


@pytest.fixture
def upload_root(test_settings):
    return Path(test_settings.upload_root)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    global _test_session

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create a session
    _test_session = TestingSessionLocal()

    # Override the get_db dependency
    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal

    yield _test_session

    # Cleanup
    app.dependency_overrides.clear()
    _test_session.close()
    _test_session = None

    # Drop all tables
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client."""
    with TestClient(app) as c:
        yield c


def _make_user(db, username, display_name, role=UserRole.USER):
    user = User(
        username=username,
        hashed_password=get_password_hash(TEST_PASSWORD),
        display_name=display_name,
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def test_user(db):
    """Create a test user."""
    return _make_user(db, "alice", "Alice")


@pytest.fixture(scope="function")
def other_user(db):
    """A second family member who receives notifications."""
    return _make_user(db, "bob", "Bob")


@pytest.fixture(scope="function")
def admin_user(db):
    return _make_user(db, "admin", "Admin", role=UserRole.ADMIN)


@pytest.fixture(scope="function")
def auth_token(test_user):
    """Get an auth token for the test user."""
    access_token, _ = create_tokens(test_user)
    return access_token


@pytest.fixture(scope="function")
def auth_headers(auth_token):
    """Get auth headers for the test user."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture(scope="function")
def admin_headers(admin_user):
    access_token, _ = create_tokens(admin_user)
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    File-backed SQLite database for worker tests.

    Every session gets its own connection, so claims from different threads
    really race against each other.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'worker.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    yield factory
    file_engine.dispose()


@pytest.fixture
def worker_settings(test_settings):
    """Settings for a Worker under test: no back-off, short grace period."""
    return test_settings.model_copy(update={
        "worker_retry_backoff_seconds": 0.0,
        "worker_shutdown_grace": 0.5,
        "worker_poll_interval": 0.01,
    })
