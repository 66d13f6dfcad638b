"""
Pytest Configuration and Fixtures

In-memory SQLite store, UoW provider and a Redis double for the
priority service tests.
"""
import os
import sys
import time
from datetime import datetime, timezone

import pytest
import pytest_asyncio

# Add services/core to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'services', 'core'))

# database.py refuses to import without a URL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from sqlalchemy import select, update
from sqlalchemy.pool import StaticPool

from database import build_engine, build_session_factory, create_schema
from infrastructure.uow import create_uow_provider
from models import Priority, PrioritySource, PriorityState


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return create_uow_provider(session_factory)


@pytest.fixture
def make_priority(session_factory):
    """Insert a priority row directly, bypassing the adapters."""

    async def _make(owner_id: str = "user-1", **fields) -> Priority:
        state = fields.pop("state", PriorityState.ACTIVE.value)
        fields.setdefault("title", "Write report")
        fields.setdefault("source", PrioritySource.MANUAL.value)
        fields.setdefault("score", 50)
        priority = Priority(owner_id=owner_id, _state=state, **fields)
        if state == PriorityState.SOFT_DELETED.value and priority.deleted_at is None:
            priority.deleted_at = datetime.now(timezone.utc)

        async with session_factory() as session:
            session.add(priority)
            await session.commit()
        return priority

    return _make


@pytest.fixture
def set_deleted_at(session_factory):
    """Backdate deleted_at of one row (simulates the passage of time)."""

    async def _set(priority_id, deleted_at: datetime) -> None:
        async with session_factory() as session:
            await session.execute(
                update(Priority).where(Priority.id == priority_id).values(deleted_at=deleted_at)
            )
            await session.commit()

    return _set


@pytest.fixture
def fetch_rows(session_factory):
    """All rows of one owner, straight from the table."""
    async def _fetch(owner_id: str = "user-1", source: str = None) -> list:
        stmt = select(Priority).where(Priority.owner_id == owner_id)
        if source is not None:
            stmt = stmt.where(Priority.source == source)
        async with session_factory() as session:
            result = await session.execute(stmt.order_by(Priority.created_at))
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
def mock_redis():
    """Mock Redis for unit tests (SET NX PX + GET)."""
    class MockRedis:
        def __init__(self):
            self._data = {}

        def _alive(self, key: str):
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                del self._data[key]
                return None
            return value

        async def get(self, key: str):
            return self._alive(key)

        async def set(self, key: str, value: str, ex: int = None, px: int = None, nx: bool = False):
            if nx and self._alive(key) is not None:
                return None
            expires_at = None
            if px is not None:
                expires_at = time.monotonic() + px / 1000
            elif ex is not None:
                expires_at = time.monotonic() + ex
            self._data[key] = (value, expires_at)
            return True

        async def delete(self, *keys: str):
            for key in keys:
                self._data.pop(key, None)
            return len(keys)

    return MockRedis()


@pytest.fixture
def completion_reply():
    """Build an OpenAI-style chat completion body around `content`."""

    def _reply(content: str) -> dict:
        return {
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "model": "test-model",
        }

    return _reply
