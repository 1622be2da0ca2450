"""
Pytest fixtures for PrivacyKit tests.
Provides a file-backed SQLite store, the link service with a controllable
clock, and a FastAPI test client.
"""

import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

from privacykit.config import Settings
from privacykit.main import create_app
from privacykit.services import LinkService
from privacykit.store import LinkStore


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def database_url(tmp_path):
    """A fresh SQLite file per test; threads need a real file to share."""
    return f"sqlite:///{tmp_path / 'links.db'}"


@pytest.fixture
def settings(database_url):
    return Settings(
        DATABASE_URL=database_url,
        SQLITE_SYNCHRONOUS="NORMAL",
        BASE_URL="http://short.test",
        FRONTEND_URL="http://front.test",
        CORS_ORIGINS=["http://front.test"],
    )


@pytest.fixture
def store(database_url):
    link_store = LinkStore(database_url, synchronous="NORMAL")
    link_store.init_schema()
    try:
        yield link_store
    finally:
        link_store.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc))


@pytest.fixture
def service(store, clock):
    return LinkService(store, clock=clock)


@pytest.fixture
def live_service(store):
    """Service on the real wall clock."""
    return LinkService(store)


@pytest.fixture
def client(settings):
    """Create a FastAPI test client running the full lifespan."""
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def sample_url():
    """Sample URL for testing."""
    return "https://example.com/some/long/path?query=value"
