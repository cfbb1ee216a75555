"""
Visitor Trust Service

Records a visit and classifies it:
1. Find the visitor by fingerprint hash or session id (or create one)
2. Append a profile record (IP/User-Agent/referer) for a new visitor
3. Classify with VisitorTrustEngine
4. Append the score to the score history
5. Update the visitor's user type and score in one atomic upsert

Also stores fingerprint and behavior payloads submitted by the browser and
answers the monitoring queries over stored visitors (list, detail, statistics).
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from ..db.signal_store import SignalStore, Stream
from ..engines.trust_engine import VisitorTrustEngine
from ..exceptions import VisitorInputError, VisitorNotFoundError
from ..models.schemas import (
    TIMESTAMP_FIELDS,
    BehaviorEvent,
    ClassificationResult,
    FingerprintPayload,
    UserType,
    VisitEvaluation,
    VisitorDetail,
    VisitorInput,
    VisitorPage,
    VisitorStatistics,
)
from ..models.visitor import new_id
from ..utils import utcnow

logger = logging.getLogger(__name__)


class VisitorTrustService:
    """Visit recording and classification workflow"""

    # Monitoring
    DETAIL_SCORE_LIMIT = 10
    RECENT_WINDOW = timedelta(hours=24)

    def __init__(
        self,
        store: SignalStore,
        engine: Optional[VisitorTrustEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: signal store
            engine: trust engine (defaults to one over the same store)
            clock: returns the current UTC time
        """
        self.store = store
        self.engine = engine or VisitorTrustEngine(store, clock=clock)
        self.clock = clock

    async def evaluate_visit(self, visitor: Any) -> VisitEvaluation:
        """
        Record a visit and classify the visitor

        Args:
            visitor: VisitorInput or mapping of visitor fields

        Returns:
            VisitEvaluation: visitor id, whether it was created, classification

        Raises:
            VisitorInputError: unparseable visitor input
            SignalStoreError: the visit could not be persisted
        """
        visitor = VisitorInput.parse(visitor)
        visitor_id, created = await self._find_or_create_visitor(visitor)

        if created:
            await self.store.append_record(
                Stream.VISITOR_PROFILES,
                {
                    "visitor_id": visitor_id,
                    "ip_address": visitor.ip,
                    "user_agent": visitor.user_agent,
                    "referer": visitor.referer,
                    "created_at": self.clock(),
                },
            )

        result = await self.engine.classify_visitor(visitor)

        await self._save_score(visitor_id, result)
        await self.store.upsert_visitor_fields(
            visitor_id,
            {"user_type": result.user_type.value, "score": result.total_score},
        )

        logger.info(
            f"Visit evaluated: {result.user_type.value} (new={created})",
            extra={
                "visitor_id": visitor_id,
                "session_id": visitor.session_id,
                "user_type": result.user_type.value,
                "total_score": result.total_score,
            },
        )
        return VisitEvaluation(visitor_id=visitor_id, created=created, result=result)

    async def record_fingerprint(self, visitor_id: str, payload: Mapping[str, Any]) -> str:
        """
        Store a device fingerprint submitted for a visitor

        Args:
            visitor_id: visitor the fingerprint belongs to
            payload: fingerprint fields (canvas, webgl, audio, fonts, ...)

        Returns:
            str: id of the stored fingerprint record

        Raises:
            VisitorInputError: missing visitor id or malformed payload
        """
        self._require_visitor_id(visitor_id)

        try:
            fingerprint = FingerprintPayload.model_validate(payload)
        except ValidationError as e:
            raise VisitorInputError(
                message="Invalid fingerprint payload",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

        record = fingerprint.model_dump()
        record.update(visitor_id=visitor_id, created_at=self.clock())
        record_id = await self.store.append_record(Stream.FINGERPRINTS, record)

        logger.debug("Fingerprint recorded", extra={"visitor_id": visitor_id})
        return record_id

    async def record_behavior(self, visitor_id: str, payload: Mapping[str, Any]) -> str:
        """
        Store one behavior event submitted for a visitor

        The event timestamp defaults to the current time when the payload
        carries none.

        Args:
            visitor_id: visitor the event belongs to
            payload: behavior fields (session_id, action_type, mouse_movements, ...)

        Returns:
            str: id of the stored behavior event record

        Raises:
            VisitorInputError: missing visitor id or malformed payload
        """
        self._require_visitor_id(visitor_id)

        data = dict(payload)
        if not any(data.get(k) for k in TIMESTAMP_FIELDS):
            data["timestamp"] = self.clock()

        try:
            event = BehaviorEvent.model_validate(data)
        except ValidationError as e:
            raise VisitorInputError(
                message="Invalid behavior payload",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

        record_id = await self.store.append_record(
            Stream.BEHAVIOR_EVENTS,
            {
                "visitor_id": visitor_id,
                "session_id": event.session_id,
                "action_type": event.category.value,
                "page_url": event.page_url,
                "ip_address": event.ip_address,
                "user_agent": event.user_agent,
                "referer": event.referer,
                "mouse_movements": event.mouse_movements,
                "click_events": event.click_events,
                "scroll_events": event.scroll_events,
                "keyboard_events": event.keyboard_events,
                "time_on_page": event.time_on_page,
                "interaction_count": event.interaction_count,
                "created_at": event.timestamp,
            },
        )

        logger.debug(
            f"Behavior event recorded: {event.category.value}",
            extra={"visitor_id": visitor_id, "session_id": event.session_id},
        )
        return record_id

    async def update_visitor(
        self,
        visitor_id: str,
        user_type: Optional[UserType] = None,
        notes: Optional[str] = None,
        is_whitelisted: Optional[bool] = None,
        is_blacklisted: Optional[bool] = None,
    ) -> None:
        """
        Apply an administrator's manual changes to a visitor

        Setting user_type marks the visitor as manually overridden.
        """
        self._require_visitor_id(visitor_id)

        fields: dict[str, Any] = {}
        if user_type is not None:
            fields["user_type"] = UserType(user_type).value
            fields["manual_override"] = True
        if notes is not None:
            fields["notes"] = notes
        if is_whitelisted is not None:
            fields["is_whitelisted"] = is_whitelisted
        if is_blacklisted is not None:
            fields["is_blacklisted"] = is_blacklisted

        if fields:
            await self.store.upsert_visitor_fields(visitor_id, fields)
            logger.info(
                f"Visitor updated manually: {sorted(fields)}",
                extra={"visitor_id": visitor_id},
            )

    async def list_visitors(
        self,
        page: int = 1,
        per_page: int = 50,
        user_type: Optional[str] = None,
        min_score: int = 0,
        max_score: int = 100,
    ) -> VisitorPage:
        """
        One page of stored visitors, most recently seen first

        Args:
            page: 1-based page number
            per_page: items per page
            user_type: only visitors of this type (all types when empty)
            min_score: lowest stored score to include
            max_score: highest stored score to include

        Returns:
            VisitorPage: visitors with their latest confidence and profile

        Raises:
            ValueError: page/per_page below 1, inverted score range or
                unknown user_type
        """
        if page < 1 or per_page < 1:
            raise ValueError("page and per_page must be at least 1")
        if min_score > max_score:
            raise ValueError(f"min_score {min_score} exceeds max_score {max_score}")

        visitors, total = await self.store.list_visitors(
            user_type=UserType(user_type) if user_type else None,
            min_score=min_score,
            max_score=max_score,
            offset=(page - 1) * per_page,
            limit=per_page,
        )

        return VisitorPage(
            data=visitors,
            page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / per_page),
        )

    async def get_visitor_detail(self, visitor_id: str) -> VisitorDetail:
        """
        Visitor with its latest profile and fingerprint and last 10 scores

        Raises:
            VisitorInputError: missing visitor id
            VisitorNotFoundError: no such visitor
        """
        self._require_visitor_id(visitor_id)

        detail = await self.store.get_visitor_detail(
            visitor_id, score_limit=self.DETAIL_SCORE_LIMIT
        )
        if detail is None:
            raise VisitorNotFoundError(visitor_id)
        return detail

    async def get_statistics(self) -> VisitorStatistics:
        """Visitor counts per type and visitors first seen in the last 24 hours"""
        return await self.store.get_statistics(self.clock() - self.RECENT_WINDOW)

    async def _find_or_create_visitor(self, visitor: VisitorInput) -> tuple[str, bool]:
        now = self.clock()
        visitor_id = await self.store.find_visitor_id(
            visitor.session_id, visitor.fingerprint_hash
        )

        if visitor_id is not None:
            await self.store.upsert_visitor_fields(
                visitor_id, {"last_visit_at": now}, increments={"visit_count": 1}
            )
            return visitor_id, False

        visitor_id = new_id()
        await self.store.upsert_visitor_fields(
            visitor_id,
            {
                "session_id": visitor.session_id,
                "fingerprint_hash": visitor.fingerprint_hash,
                "first_visit_at": now,
                "last_visit_at": now,
            },
        )
        return visitor_id, True

    async def _save_score(self, visitor_id: str, result: ClassificationResult) -> None:
        breakdown = result.breakdown
        await self.store.append_record(
            Stream.SCORE_HISTORY,
            {
                "visitor_id": visitor_id,
                "total_score": result.total_score,
                "ip_score": breakdown.ip,
                "user_agent_score": breakdown.user_agent,
                "request_pattern_score": breakdown.request_pattern,
                "fingerprint_score": breakdown.fingerprint,
                "behavior_score": breakdown.behavior,
                "source_score": breakdown.source,
                "confidence": result.confidence,
                "user_type": result.user_type.value,
                "risk_level": result.risk_level.value,
                "flags": [flag.value for flag in result.flags],
                "created_at": result.timestamp,
            },
        )

    @staticmethod
    def _require_visitor_id(visitor_id: str) -> None:
        if not visitor_id:
            raise VisitorInputError(
                message="Visitor ID required",
                errors=[{"loc": ["visitor_id"], "msg": "Field required", "type": "missing"}],
            )
