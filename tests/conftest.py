"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any application import so the
cached settings pick them up. Every test gets its own SQLite file under
tmp_path; nothing is shared between tests.
"""

import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_review_queue.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("WEBHOOK_SECRET", "test-secret")

# Clear settings cache before any app imports to ensure test env vars are used
from review_queue.config import get_settings
get_settings.cache_clear()

from review_queue.event_locker import EventLocker
from review_queue.queue_manager import QueueManager
from review_queue.storage import build_engine, build_session_factory


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine so several threads can share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'review_queue.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine):
    return build_session_factory(engine)


@pytest.fixture
def queue(sessions) -> QueueManager:
    """Queue with a freshly provisioned prs table."""
    queue = QueueManager(sessions)
    queue.initialize()
    return queue


@pytest.fixture
def locker(sessions) -> EventLocker:
    """Locker with a freshly provisioned msg table."""
    locker = EventLocker(sessions)
    locker.initialize()
    return locker


# Dedicated PostgreSQL database for row-lock tests; its prs table is dropped
# and recreated. Tests using `store_queue` run on SQLite only when unset.
TEST_POSTGRES_URL = os.environ.get("TEST_POSTGRES_URL")


@pytest.fixture(params=["sqlite", "postgresql"])
def store_sessions(request, tmp_path):
    """Sessions on SQLite and, when TEST_POSTGRES_URL is set, on PostgreSQL."""
    if request.param == "sqlite":
        url = f"sqlite:///{tmp_path / 'review_queue.db'}"
    elif TEST_POSTGRES_URL:
        url = TEST_POSTGRES_URL
    else:
        pytest.skip("TEST_POSTGRES_URL not set")

    engine = build_engine(url)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store_queue(store_sessions) -> QueueManager:
    queue = QueueManager(store_sessions)
    queue.initialize()
    return queue
