"""
pytest configuration

Shared fixtures: a file-backed SQLite signal store (aiosqlite), a mocked
signal store for unit tests, a fixed clock and a behavior event factory.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from visitor_trust.db import SignalStore, SqlSignalStore, close_db, create_session_maker, init_db
from visitor_trust.models.schemas import BehaviorEvent

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    """Clock pinned to FIXED_NOW"""
    return lambda: FIXED_NOW


@pytest.fixture
async def db_engine(tmp_path):
    """
    Signal store database for one test

    A file database is used instead of :memory: so concurrent store
    operations each get their own connection to the same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'signals.db'}")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def sql_store(session_maker):
    return SqlSignalStore(session_maker)


@pytest.fixture
def mock_store():
    """SignalStore mock answering "nothing recorded" to every lookup"""
    store = AsyncMock(spec=SignalStore)
    store.lookup_access_list.return_value = None
    store.count_recent_by_key.return_value = 0
    store.count_and_first_timestamp_by_session.return_value = (0, None)
    store.fetch_behavior_events_by_session.return_value = []
    store.list_session_ids.return_value = []
    store.find_visitor_id.return_value = None
    return store


@pytest.fixture
def make_event():
    """Build a BehaviorEvent `offset` seconds after FIXED_NOW"""

    def _make_event(
        offset: float = 0,
        category: str = "click",
        session_id: str = "sess-1",
        ip_address: str = "198.51.100.7",
        user_agent: str = "Mozilla/5.0 Chrome/120.0",
        **kwargs,
    ) -> BehaviorEvent:
        return BehaviorEvent(
            session_id=session_id,
            category=category,
            timestamp=FIXED_NOW + timedelta(seconds=offset),
            ip_address=ip_address,
            user_agent=user_agent,
            **kwargs,
        )

    return _make_event
