"""
Access list cache - Redis read-through cache for allow/deny lookups

Every classification checks up to three access lists, so their lookups
are cached in Redis with a short TTL. Writes through this store invalidate
the cached key. Expiry is still applied by the caller at read time, so a
cached entry that expires while cached stops matching immediately.
"""

import json
import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..db.signal_store import SignalStore, Stream
from ..models.schemas import (
    AccessListMatch,
    AccessListType,
    BehaviorEvent,
    ListKind,
    UserType,
    VisitorDetail,
    VisitorStatistics,
    VisitorSummary,
)
from ..utils.metrics import record_cache_lookup

logger = logging.getLogger(__name__)


class CachedSignalStore(SignalStore):
    """
    SignalStore decorator that caches access list lookups in Redis

    All other operations are delegated unchanged. Redis failures fall back
    to the wrapped store.
    """

    def __init__(
        self,
        store: SignalStore,
        redis: aioredis.Redis,
        ttl_seconds: int = 60,
        prefix: str = "visitor_trust:access",
    ):
        """
        Args:
            store: underlying signal store
            redis: Redis client (decode_responses=True expected)
            ttl_seconds: cache TTL for both hits and misses
            prefix: Redis key prefix
        """
        self.store = store
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _get_key(self, list_type: AccessListType, kind: ListKind, value: str) -> str:
        return f"{self.prefix}:{list_type.value}:{kind.value}:{value}"

    async def lookup_access_list(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> Optional[AccessListMatch]:
        key = self._get_key(list_type, kind, value)

        try:
            cached = await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Access list cache read failed, using store: {e}")
            cached = None
        else:
            if cached is not None:
                record_cache_lookup(hit=True)
                return self._decode(cached)
            record_cache_lookup(hit=False)

        match = await self.store.lookup_access_list(list_type, kind, value)

        try:
            await self.redis.set(key, self._encode(match), ex=self.ttl_seconds)
        except RedisError as e:
            logger.warning(f"Access list cache write failed: {e}")

        return match

    async def add_access_entry(
        self,
        list_type: AccessListType,
        kind: ListKind,
        value: str,
        reason: str = "",
        expires_at: Optional[datetime] = None,
        added_by: Optional[str] = None,
    ) -> None:
        await self.store.add_access_entry(
            list_type, kind, value, reason=reason, expires_at=expires_at, added_by=added_by
        )
        await self._invalidate(list_type, kind, value)

    async def remove_access_entry(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> bool:
        removed = await self.store.remove_access_entry(list_type, kind, value)
        await self._invalidate(list_type, kind, value)
        return removed

    async def _invalidate(self, list_type: AccessListType, kind: ListKind, value: str) -> None:
        try:
            await self.redis.delete(self._get_key(list_type, kind, value))
        except RedisError as e:
            logger.warning(f"Access list cache invalidation failed: {e}")

    @staticmethod
    def _encode(match: Optional[AccessListMatch]) -> str:
        if match is None:
            return json.dumps({"hit": False})
        return json.dumps(
            {
                "hit": True,
                "expires_at": match.expires_at.isoformat() if match.expires_at else None,
            }
        )

    @staticmethod
    def _decode(raw: str) -> Optional[AccessListMatch]:
        data = json.loads(raw)
        if not data.get("hit"):
            return None
        expires_at = data.get("expires_at")
        return AccessListMatch(
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None
        )

    # ------------------------------------------------------------------
    # Delegated operations
    # ------------------------------------------------------------------

    async def count_recent_by_key(self, key_type: str, value: str, since: datetime) -> int:
        return await self.store.count_recent_by_key(key_type, value, since)

    async def count_and_first_timestamp_by_session(
        self, session_id: str
    ) -> tuple[int, Optional[datetime]]:
        return await self.store.count_and_first_timestamp_by_session(session_id)

    async def fetch_behavior_events_by_session(self, session_id: str) -> list[BehaviorEvent]:
        return await self.store.fetch_behavior_events_by_session(session_id)

    async def append_record(self, stream: Stream, record: Mapping[str, Any]) -> str:
        return await self.store.append_record(stream, record)

    async def upsert_visitor_fields(
        self,
        visitor_id: str,
        fields: Mapping[str, Any],
        increments: Optional[Mapping[str, int]] = None,
    ) -> None:
        await self.store.upsert_visitor_fields(visitor_id, fields, increments)

    async def find_visitor_id(self, session_id: str, fingerprint_hash: str) -> Optional[str]:
        return await self.store.find_visitor_id(session_id, fingerprint_hash)

    async def list_session_ids(self) -> list[str]:
        return await self.store.list_session_ids()

    async def list_visitors(
        self,
        user_type: Optional[UserType] = None,
        min_score: int = 0,
        max_score: int = 100,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[VisitorSummary], int]:
        return await self.store.list_visitors(user_type, min_score, max_score, offset, limit)

    async def get_visitor_detail(
        self, visitor_id: str, score_limit: int = 10
    ) -> Optional[VisitorDetail]:
        return await self.store.get_visitor_detail(visitor_id, score_limit)

    async def get_statistics(self, recent_since: datetime) -> VisitorStatistics:
        return await self.store.get_statistics(recent_since)
