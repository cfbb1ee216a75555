"""
SQL signal store integration tests (SQLite via aiosqlite)
"""

import asyncio
import warnings
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SAWarning

from visitor_trust.db import Stream
from visitor_trust.exceptions import SignalStoreError
from visitor_trust.models import VisitorRecord
from visitor_trust.models.schemas import AccessListType, EventCategory, ListKind

pytestmark = pytest.mark.integration


async def fetch_visitor(session_maker, visitor_id):
    async with session_maker() as session:
        return await session.get(VisitorRecord, visitor_id)


class TestUpsertVisitorFields:
    """Atomic visitor updates"""

    @pytest.mark.asyncio
    async def test_insert_on_miss_then_update(self, sql_store, session_maker):
        await sql_store.upsert_visitor_fields("v-1", {"session_id": "s-1"})
        await sql_store.upsert_visitor_fields(
            "v-1", {"user_type": "human", "score": 91}, increments={"visit_count": 1}
        )

        visitor = await fetch_visitor(session_maker, "v-1")
        assert visitor.session_id == "s-1"
        assert visitor.user_type == "human"
        assert visitor.score == 91
        assert visitor.visit_count == 2
        assert visitor.version == 2

    @pytest.mark.asyncio
    async def test_concurrent_increments_not_lost(self, sql_store, session_maker):
        await sql_store.upsert_visitor_fields("v-1", {"session_id": "s-1"})

        await asyncio.gather(
            *[
                sql_store.upsert_visitor_fields("v-1", {}, increments={"visit_count": 1})
                for _ in range(5)
            ]
        )

        visitor = await fetch_visitor(session_maker, "v-1")
        assert visitor.visit_count == 6
        assert visitor.version == 6

    @pytest.mark.asyncio
    async def test_protected_and_unknown_columns_rejected(self, sql_store):
        with pytest.raises(ValueError):
            await sql_store.upsert_visitor_fields("v-1", {"version": 10})
        with pytest.raises(ValueError):
            await sql_store.upsert_visitor_fields("v-1", {"favourite_colour": "red"})


class TestReads:
    """Lookup queries used by the scorers"""

    @pytest.mark.asyncio
    async def test_count_recent_by_ip(self, sql_store, now):
        for minutes_ago in (1, 2, 4, 6, 30):
            await sql_store.append_record(
                Stream.VISITOR_PROFILES,
                {
                    "visitor_id": "v-1",
                    "ip_address": "203.0.113.5",
                    "created_at": now - timedelta(minutes=minutes_ago),
                },
            )
        await sql_store.append_record(
            Stream.VISITOR_PROFILES,
            {"visitor_id": "v-2", "ip_address": "203.0.113.6", "created_at": now},
        )

        count = await sql_store.count_recent_by_key(
            "ip", "203.0.113.5", now - timedelta(minutes=5)
        )
        assert count == 3

    @pytest.mark.asyncio
    async def test_session_events(self, sql_store, now):
        for offset, action in ((5, "click"), (0, "page_load"), (9, "hover")):
            await sql_store.append_record(
                Stream.BEHAVIOR_EVENTS,
                {
                    "session_id": "s-1",
                    "action_type": action,
                    "click_events": [{"x": 1}] if action == "click" else [],
                    "created_at": now + timedelta(seconds=offset),
                },
            )

        count, first_ts = await sql_store.count_and_first_timestamp_by_session("s-1")
        assert count == 3
        assert first_ts == now

        events = await sql_store.fetch_behavior_events_by_session("s-1")
        assert [e.category for e in events] == [
            EventCategory.PAGE_LOAD,
            EventCategory.CLICK,
            EventCategory.OTHER,
        ]
        assert events[1].click_events == [{"x": 1}]
        assert events[0].timestamp == now

        assert await sql_store.count_and_first_timestamp_by_session("none") == (0, None)
        assert await sql_store.list_session_ids() == ["s-1"]

    @pytest.mark.asyncio
    async def test_list_session_ids_distinct_without_warnings(self, sql_store, now):
        for session_id in ("s-2", "s-1", "s-2", ""):
            await sql_store.append_record(
                Stream.BEHAVIOR_EVENTS,
                {"session_id": session_id, "action_type": "click", "created_at": now},
            )

        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            assert await sql_store.list_session_ids() == ["s-1", "s-2"]

    @pytest.mark.asyncio
    async def test_find_visitor_by_fingerprint_or_session(self, sql_store):
        await sql_store.upsert_visitor_fields(
            "v-1", {"session_id": "s-1", "fingerprint_hash": "fp-1"}
        )

        assert await sql_store.find_visitor_id("other", "fp-1") == "v-1"
        assert await sql_store.find_visitor_id("s-1", "") == "v-1"
        assert await sql_store.find_visitor_id("", "") is None
        assert await sql_store.find_visitor_id("s-2", "fp-2") is None

    @pytest.mark.asyncio
    async def test_access_entries(self, sql_store, now):
        await sql_store.add_access_entry(
            AccessListType.DENY, ListKind.IP, "203.0.113.9", reason="abuse"
        )
        await sql_store.add_access_entry(
            AccessListType.DENY,
            ListKind.IP,
            "203.0.113.9",
            reason="abuse",
            expires_at=now + timedelta(days=1),
        )

        match = await sql_store.lookup_access_list(
            AccessListType.DENY, ListKind.IP, "203.0.113.9"
        )
        assert match.expires_at == now + timedelta(days=1)
        assert (
            await sql_store.lookup_access_list(
                AccessListType.ALLOW, ListKind.IP, "203.0.113.9"
            )
            is None
        )

        assert await sql_store.remove_access_entry(
            AccessListType.DENY, ListKind.IP, "203.0.113.9"
        )
        assert not await sql_store.remove_access_entry(
            AccessListType.DENY, ListKind.IP, "203.0.113.9"
        )


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_stream_column_rejected(self, sql_store):
        with pytest.raises(ValueError):
            await sql_store.append_record(Stream.SCORE_HISTORY, {"bogus": 1})

    @pytest.mark.asyncio
    async def test_backend_errors_wrapped(self, sql_store, db_engine):
        async with db_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE behavior_events")

        with pytest.raises(SignalStoreError) as exc_info:
            await sql_store.fetch_behavior_events_by_session("s-1")
        assert exc_info.value.details["operation"] == "fetch_behavior_events_by_session"


class TestRecordedColumns:
    @pytest.mark.asyncio
    async def test_append_assigns_id(self, sql_store, session_maker):
        record_id = await sql_store.append_record(
            Stream.VISITORS, {"session_id": "s-9", "user_type": "bot"}
        )
        async with session_maker() as session:
            result = await session.execute(
                select(VisitorRecord.user_type).where(VisitorRecord.id == record_id)
            )
            assert result.scalar_one() == "bot"
