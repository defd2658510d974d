"""
Shared test fixtures.

These replace real infrastructure with lightweight in-memory alternatives:
- PostgreSQL → SQLite (in memory, or a temp file for multi-threaded tests)
- Redis → fakeredis (pure Python Redis mock)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
- Chromium / remote API / S3 → scripted fakes from tests/helpers.py

This means tests:
- Run without Docker
- Run in milliseconds (except the worker pool tests, which use real threads)
- Are fully isolated (each test gets a fresh database)
"""

import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from api.main import create_app
from helpers import FakeClock
from jobqueue.queue import ScreenshotQueue
from jobqueue.service import ScreenshotQueueService
from models.base import Base, create_db_engine, create_session_factory

# Registers the entity tables on Base.metadata.
import models.entities  # noqa: F401


@pytest.fixture
def db_session_factory():
    """A fresh in-memory database for each test."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """
    A fresh SQLite file database.

    Each thread gets its own connection, which is what the concurrent
    claim and worker pool tests need.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'queue.db'}")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def fake_redis():
    """Create a fake Redis instance (in-memory, no real Redis needed)."""
    r = fakeredis.FakeRedis()
    yield r
    r.flushall()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(db_session_factory, fake_redis, clock):
    """A queue on the in-memory database with a hand-driven clock."""
    return ScreenshotQueue(
        db_session_factory,
        fake_redis,
        default_priority=10,
        default_max_attempts=3,
        backoff_base_ms=2000,
        stall_timeout=60,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(queue):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    The app gets a queue service without workers, exactly like the real API
    process. ASGITransport means requests go directly to the app in-process,
    no HTTP server or network involved.
    """
    app = create_app(queue_service=ScreenshotQueueService(queue))

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
