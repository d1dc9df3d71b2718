"""
Test configuration and fixtures for the AxeScan API.

Every test gets a fresh in-memory SQLite database behind the real
ScanRepository; the Celery dispatcher is replaced with a recorder so no
broker or browser is needed.
"""

import os
import tempfile
from typing import Generator, List, Tuple

from dotenv import load_dotenv

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = tempfile.mktemp(suffix=".db")
    os.environ["DATABASE_URL"] = f"sqlite:///{test_db_path}"

os.environ.setdefault("SCANNER_API_KEY", "test-scanner-key")

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from axescan.features.scan.dependencies.scan import (
    get_scan_dispatcher,
    get_scan_rate_limiter,
    get_scan_repository,
)
from axescan.features.scan.services.repository import ScanRepository
from axescan.platform.config import settings
from axescan.platform.db.base import Base
from axescan.platform.utils.rate_limit import InMemoryRateLimitStore, RateLimiter


class RecordingDispatcher:
    """Stands in for Celery: remembers what would have been queued."""

    def __init__(self, error: Exception = None):
        self.dispatched: List[Tuple[str, str]] = []
        self.error = error

    def dispatch(self, scan_id: str, url: str) -> None:
        if self.error is not None:
            raise self.error
        self.dispatched.append((scan_id, url))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory) -> ScanRepository:
    return ScanRepository(session_factory)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(
        store=InMemoryRateLimitStore(),
        max_requests=settings.SCAN_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.SCAN_RATE_LIMIT_WINDOW_SECONDS,
    )


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from axescan.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app, repository, dispatcher, rate_limiter) -> Generator[TestClient, None, None]:
    """
    Test client wired to the per-test database, a recording dispatcher and a
    fresh rate limiter.
    """
    test_app.dependency_overrides[get_scan_repository] = lambda: repository
    test_app.dependency_overrides[get_scan_dispatcher] = lambda: dispatcher
    test_app.dependency_overrides[get_scan_rate_limiter] = lambda: rate_limiter

    with TestClient(test_app) as test_client:
        yield test_client

    test_app.dependency_overrides.clear()


def make_token(user_id: str) -> str:
    return jwt.encode({"sub": user_id}, settings.JWT_SECRET_KEY, algorithm=settings.ALGORITHM)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token('user-123')}"}


@pytest.fixture
def token_for():
    return make_token
