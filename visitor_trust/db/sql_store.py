"""
SQLAlchemy-backed signal store

PostgreSQL (asyncpg) in deployment, SQLite (aiosqlite) in tests. Every
operation runs in its own session; visitor updates are single UPDATE
statements so concurrent writers never lose increments or see partial rows.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import SignalStoreError
from ..models import (
    AccessListEntry,
    BehaviorEventRecord,
    FingerprintRecord,
    ScoreRecord,
    SessionAnalysisRecord,
    VisitorProfileRecord,
    VisitorRecord,
)
from ..models.schemas import (
    AccessListMatch,
    AccessListType,
    BehaviorEvent,
    ListKind,
    ScoreBreakdown,
    ScoreHistoryEntry,
    StoredFingerprint,
    UserType,
    VisitorDetail,
    VisitorProfile,
    VisitorStatistics,
    VisitorSummary,
)
from ..models.visitor import new_id
from ..utils import as_utc, utcnow
from .signal_store import SignalStore, Stream

logger = logging.getLogger(__name__)

STREAM_MODELS = {
    Stream.VISITORS: VisitorRecord,
    Stream.VISITOR_PROFILES: VisitorProfileRecord,
    Stream.FINGERPRINTS: FingerprintRecord,
    Stream.BEHAVIOR_EVENTS: BehaviorEventRecord,
    Stream.SCORE_HISTORY: ScoreRecord,
    Stream.SESSION_ANALYSES: SessionAnalysisRecord,
}

# Columns the upsert may never assign directly
PROTECTED_VISITOR_COLUMNS = {"id", "version", "created_at", "updated_at"}

# Upsert attempts before giving up on a contended visitor row
UPSERT_ATTEMPTS = 3


class SqlSignalStore(SignalStore):
    """Signal store over an async SQLAlchemy session factory"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session and translate backend failures into SignalStoreError"""
        try:
            async with self.session_maker() as session:
                yield session
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.error(
                f"Signal store operation failed: {operation}: {e}",
                extra={"operation": operation},
            )
            raise SignalStoreError(str(e), operation=operation) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def lookup_access_list(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> Optional[AccessListMatch]:
        stmt = (
            select(AccessListEntry.expires_at)
            .where(
                AccessListEntry.list_type == list_type,
                AccessListEntry.kind == kind,
                AccessListEntry.value == value,
            )
            .limit(1)
        )
        async with self._session("lookup_access_list") as session:
            row = (await session.execute(stmt)).first()

        if row is None:
            return None
        expires_at = as_utc(row.expires_at) if row.expires_at else None
        return AccessListMatch(expires_at=expires_at)

    async def count_recent_by_key(
        self, key_type: str, value: str, since: datetime
    ) -> int:
        if key_type != "ip":
            raise ValueError(f"Unsupported key type: {key_type}")

        stmt = select(func.count(VisitorProfileRecord.id)).where(
            VisitorProfileRecord.ip_address == value,
            VisitorProfileRecord.created_at >= since,
        )
        async with self._session("count_recent_by_key") as session:
            return (await session.execute(stmt)).scalar_one()

    async def count_and_first_timestamp_by_session(
        self, session_id: str
    ) -> tuple[int, Optional[datetime]]:
        stmt = select(
            func.count(BehaviorEventRecord.id),
            func.min(BehaviorEventRecord.created_at),
        ).where(BehaviorEventRecord.session_id == session_id)
        async with self._session("count_and_first_timestamp_by_session") as session:
            count, first_ts = (await session.execute(stmt)).one()

        return count, as_utc(first_ts) if first_ts else None

    async def fetch_behavior_events_by_session(
        self, session_id: str
    ) -> list[BehaviorEvent]:
        stmt = (
            select(BehaviorEventRecord)
            .where(BehaviorEventRecord.session_id == session_id)
            .order_by(BehaviorEventRecord.created_at)
        )
        async with self._session("fetch_behavior_events_by_session") as session:
            records = (await session.execute(stmt)).scalars().all()

        return [self._to_event(r) for r in records]

    async def find_visitor_id(
        self, session_id: str, fingerprint_hash: str
    ) -> Optional[str]:
        conditions = []
        if fingerprint_hash:
            conditions.append(VisitorRecord.fingerprint_hash == fingerprint_hash)
        if session_id:
            conditions.append(VisitorRecord.session_id == session_id)
        if not conditions:
            return None

        stmt = (
            select(VisitorRecord.id)
            .where(or_(*conditions))
            .order_by(VisitorRecord.created_at)
            .limit(1)
        )
        async with self._session("find_visitor_id") as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def list_session_ids(self) -> list[str]:
        stmt = (
            select(BehaviorEventRecord.session_id)
            .where(BehaviorEventRecord.session_id != "")
            .distinct()
            .order_by(BehaviorEventRecord.session_id)
        )
        async with self._session("list_session_ids") as session:
            return list((await session.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def list_visitors(
        self,
        user_type: Optional[UserType] = None,
        min_score: int = 0,
        max_score: int = 100,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[VisitorSummary], int]:
        conditions = [VisitorRecord.score >= min_score, VisitorRecord.score <= max_score]
        if user_type is not None:
            conditions.append(VisitorRecord.user_type == UserType(user_type).value)

        count_stmt = select(func.count(VisitorRecord.id)).where(*conditions)
        page_stmt = (
            select(VisitorRecord)
            .where(*conditions)
            .order_by(VisitorRecord.last_visit_at.desc(), VisitorRecord.id)
            .offset(offset)
            .limit(limit)
        )

        async with self._session("list_visitors") as session:
            total = (await session.execute(count_stmt)).scalar_one()
            visitors = (await session.execute(page_stmt)).scalars().all()

            visitor_ids = [v.id for v in visitors]
            confidences = await self._latest_confidences(session, visitor_ids)
            profiles = await self._latest_profiles(session, visitor_ids)

        summaries = [
            self._to_summary(v, confidences.get(v.id, 0.0), profiles.get(v.id))
            for v in visitors
        ]
        return summaries, total

    async def get_visitor_detail(
        self, visitor_id: str, score_limit: int = 10
    ) -> Optional[VisitorDetail]:
        fingerprint_stmt = (
            select(FingerprintRecord)
            .where(FingerprintRecord.visitor_id == visitor_id)
            .order_by(FingerprintRecord.created_at.desc())
            .limit(1)
        )
        scores_stmt = (
            select(ScoreRecord)
            .where(ScoreRecord.visitor_id == visitor_id)
            .order_by(ScoreRecord.created_at.desc())
            .limit(score_limit)
        )

        async with self._session("get_visitor_detail") as session:
            visitor = await session.get(VisitorRecord, visitor_id)
            if visitor is None:
                return None

            profiles = await self._latest_profiles(session, [visitor_id])
            fingerprint = (await session.execute(fingerprint_stmt)).scalar_one_or_none()
            scores = (await session.execute(scores_stmt)).scalars().all()

        confidence = scores[0].confidence if scores else 0.0
        return VisitorDetail(
            visitor=self._to_summary(visitor, confidence, profiles.get(visitor_id)),
            fingerprint=self._to_fingerprint(fingerprint) if fingerprint else None,
            scores=[self._to_score_entry(s) for s in scores],
        )

    async def get_statistics(self, recent_since: datetime) -> VisitorStatistics:
        by_type_stmt = select(VisitorRecord.user_type, func.count(VisitorRecord.id)).group_by(
            VisitorRecord.user_type
        )
        recent_stmt = select(func.count(VisitorRecord.id)).where(
            VisitorRecord.first_visit_at >= recent_since
        )

        async with self._session("get_statistics") as session:
            counts = dict((await session.execute(by_type_stmt)).all())
            recent = (await session.execute(recent_stmt)).scalar_one()

        return VisitorStatistics(
            total=sum(counts.values()),
            human=counts.get(UserType.HUMAN.value, 0),
            bot=counts.get(UserType.BOT.value, 0) + counts.get(UserType.HIGH_RISK.value, 0),
            suspicious=counts.get(UserType.SUSPICIOUS.value, 0),
            recent=recent,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append_record(self, stream: Stream, record: Mapping[str, Any]) -> str:
        model = STREAM_MODELS[Stream(stream)]
        columns = set(model.__table__.columns.keys())
        unknown = set(record) - columns
        if unknown:
            raise ValueError(
                f"Unknown columns for stream {Stream(stream).value}: {sorted(unknown)}"
            )

        values = dict(record)
        values.setdefault("id", new_id())

        async with self._session("append_record") as session:
            session.add(model(**values))
            await session.commit()

        return values["id"]

    async def upsert_visitor_fields(
        self,
        visitor_id: str,
        fields: Mapping[str, Any],
        increments: Optional[Mapping[str, int]] = None,
    ) -> None:
        increments = increments or {}
        self._check_visitor_columns(set(fields) | set(increments))

        update_values: dict[str, Any] = dict(fields)
        for column, delta in increments.items():
            update_values[column] = getattr(VisitorRecord, column) + delta
        update_values["version"] = VisitorRecord.version + 1
        update_values["updated_at"] = utcnow()

        stmt = (
            update(VisitorRecord)
            .where(VisitorRecord.id == visitor_id)
            .values(**update_values)
            .execution_options(synchronize_session=False)
        )

        async with self._session("upsert_visitor_fields") as session:
            for attempt in range(UPSERT_ATTEMPTS):
                result = await session.execute(stmt)
                if result.rowcount:
                    await session.commit()
                    return

                try:
                    session.add(VisitorRecord(id=visitor_id, **fields, **increments))
                    await session.commit()
                    return
                except IntegrityError:
                    # Inserted concurrently; retry as an update
                    await session.rollback()
                    logger.debug(
                        f"Visitor insert raced, retrying update (attempt {attempt + 1})",
                        extra={"visitor_id": visitor_id},
                    )

        raise SignalStoreError(
            f"Visitor {visitor_id} could not be upserted", operation="upsert_visitor_fields"
        )

    async def add_access_entry(
        self,
        list_type: AccessListType,
        kind: ListKind,
        value: str,
        reason: str = "",
        expires_at: Optional[datetime] = None,
        added_by: Optional[str] = None,
    ) -> None:
        stmt = (
            update(AccessListEntry)
            .where(
                AccessListEntry.list_type == list_type,
                AccessListEntry.kind == kind,
                AccessListEntry.value == value,
            )
            .values(
                reason=reason,
                expires_at=expires_at,
                added_by=added_by,
                added_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session("add_access_entry") as session:
            result = await session.execute(stmt)
            if not result.rowcount:
                session.add(
                    AccessListEntry(
                        list_type=list_type,
                        kind=kind,
                        value=value,
                        reason=reason,
                        expires_at=expires_at,
                        added_by=added_by,
                    )
                )
            await session.commit()

        logger.info(f"Access list entry saved: {list_type.value}/{kind.value}/{value}")

    async def remove_access_entry(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> bool:
        stmt = (
            delete(AccessListEntry)
            .where(
                AccessListEntry.list_type == list_type,
                AccessListEntry.kind == kind,
                AccessListEntry.value == value,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session("remove_access_entry") as session:
            result = await session.execute(stmt)
            await session.commit()

        return bool(result.rowcount)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_visitor_columns(columns: set[str]) -> None:
        known = set(VisitorRecord.__table__.columns.keys())
        unknown = columns - known
        if unknown:
            raise ValueError(f"Unknown visitor columns: {sorted(unknown)}")
        protected = columns & PROTECTED_VISITOR_COLUMNS
        if protected:
            raise ValueError(f"Visitor columns cannot be assigned: {sorted(protected)}")

    @staticmethod
    def _to_event(record: BehaviorEventRecord) -> BehaviorEvent:
        return BehaviorEvent.model_validate(
            {
                "session_id": record.session_id,
                "category": record.action_type,
                "timestamp": record.created_at,
                "page_url": record.page_url,
                "ip_address": record.ip_address,
                "user_agent": record.user_agent,
                "referer": record.referer,
                "mouse_movements": record.mouse_movements,
                "click_events": record.click_events,
                "scroll_events": record.scroll_events,
                "keyboard_events": record.keyboard_events,
                "time_on_page": record.time_on_page,
                "interaction_count": record.interaction_count,
            }
        )

    @staticmethod
    async def _latest_confidences(
        session: AsyncSession, visitor_ids: list[str]
    ) -> dict[str, float]:
        if not visitor_ids:
            return {}
        stmt = (
            select(ScoreRecord.visitor_id, ScoreRecord.confidence)
            .where(ScoreRecord.visitor_id.in_(visitor_ids))
            .order_by(ScoreRecord.created_at.desc())
        )
        latest: dict[str, float] = {}
        for visitor_id, confidence in (await session.execute(stmt)).all():
            latest.setdefault(visitor_id, confidence)
        return latest

    @staticmethod
    async def _latest_profiles(
        session: AsyncSession, visitor_ids: list[str]
    ) -> dict[str, VisitorProfile]:
        if not visitor_ids:
            return {}
        stmt = (
            select(VisitorProfileRecord)
            .where(VisitorProfileRecord.visitor_id.in_(visitor_ids))
            .order_by(VisitorProfileRecord.created_at.desc())
        )
        latest: dict[str, VisitorProfile] = {}
        for record in (await session.execute(stmt)).scalars():
            if record.visitor_id not in latest:
                latest[record.visitor_id] = VisitorProfile(
                    ip_address=record.ip_address,
                    user_agent=record.user_agent,
                    referer=record.referer,
                    created_at=as_utc(record.created_at),
                )
        return latest

    @staticmethod
    def _to_summary(
        record: VisitorRecord, confidence: float, profile: Optional[VisitorProfile]
    ) -> VisitorSummary:
        return VisitorSummary(
            visitor_id=record.id,
            session_id=record.session_id,
            fingerprint_hash=record.fingerprint_hash,
            user_type=record.user_type,
            score=record.score,
            confidence=confidence,
            first_visit_at=as_utc(record.first_visit_at),
            last_visit_at=as_utc(record.last_visit_at),
            visit_count=record.visit_count,
            is_whitelisted=record.is_whitelisted,
            is_blacklisted=record.is_blacklisted,
            manual_override=record.manual_override,
            notes=record.notes,
            profile=profile,
        )

    @staticmethod
    def _to_fingerprint(record: FingerprintRecord) -> StoredFingerprint:
        return StoredFingerprint(
            fingerprint_hash=record.fingerprint_hash,
            canvas=record.canvas,
            webgl=record.webgl,
            audio=record.audio,
            fonts=record.fonts,
            plugins=record.plugins,
            touch_support=record.touch_support,
            hardware_concurrency=record.hardware_concurrency,
            device_memory=record.device_memory,
            color_depth=record.color_depth,
            created_at=as_utc(record.created_at),
        )

    @staticmethod
    def _to_score_entry(record: ScoreRecord) -> ScoreHistoryEntry:
        return ScoreHistoryEntry(
            total_score=record.total_score,
            breakdown=ScoreBreakdown(
                ip=record.ip_score,
                user_agent=record.user_agent_score,
                request_pattern=record.request_pattern_score,
                fingerprint=record.fingerprint_score,
                behavior=record.behavior_score,
                source=record.source_score,
            ),
            confidence=record.confidence,
            user_type=record.user_type,
            risk_level=record.risk_level,
            flags=record.flags,
            created_at=as_utc(record.created_at),
        )
