"""
SignalStore contract

The narrow read/write surface the trust engine and its services need from
persistence. One concrete backend is picked per deployment; engine logic
never branches on which one it is.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

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


class Stream(str, Enum):
    """Record streams accepted by append_record"""

    VISITORS = "visitors"
    VISITOR_PROFILES = "visitor_profiles"
    FINGERPRINTS = "fingerprints"
    BEHAVIOR_EVENTS = "behavior_events"
    SCORE_HISTORY = "score_history"
    SESSION_ANALYSES = "session_analyses"


class SignalStore(ABC):
    """
    Signal store interface

    Implementations raise SignalStoreError for backend failures (timeouts,
    connectivity, driver errors) and ValueError for caller mistakes such as
    an unknown stream or column.
    """

    @abstractmethod
    async def lookup_access_list(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> Optional[AccessListMatch]:
        """
        Exact-match allow/deny lookup

        Returns the entry even if it has expired; callers apply
        AccessListMatch.is_active().
        """

    @abstractmethod
    async def count_recent_by_key(
        self, key_type: str, value: str, since: datetime
    ) -> int:
        """Count records observed for `key_type`=`value` at or after `since`"""

    @abstractmethod
    async def count_and_first_timestamp_by_session(
        self, session_id: str
    ) -> tuple[int, Optional[datetime]]:
        """Number of behavior events in the session and the earliest timestamp"""

    @abstractmethod
    async def fetch_behavior_events_by_session(
        self, session_id: str
    ) -> list[BehaviorEvent]:
        """All behavior events of the session, oldest first"""

    @abstractmethod
    async def append_record(self, stream: Stream, record: Mapping[str, Any]) -> str:
        """Append a record to a stream and return its id"""

    @abstractmethod
    async def upsert_visitor_fields(
        self,
        visitor_id: str,
        fields: Mapping[str, Any],
        increments: Optional[Mapping[str, int]] = None,
    ) -> None:
        """
        Atomically update (or create) a visitor record

        `fields` are assigned; `increments` are added to the stored value in
        the same statement. On create, increments become initial values.
        """

    @abstractmethod
    async def find_visitor_id(
        self, session_id: str, fingerprint_hash: str
    ) -> Optional[str]:
        """Visitor matching the fingerprint hash or the session id, if any"""

    @abstractmethod
    async def list_session_ids(self) -> list[str]:
        """Every session id that has at least one behavior event"""

    @abstractmethod
    async def add_access_entry(
        self,
        list_type: AccessListType,
        kind: ListKind,
        value: str,
        reason: str = "",
        expires_at: Optional[datetime] = None,
        added_by: Optional[str] = None,
    ) -> None:
        """Create or replace an allow/deny entry"""

    @abstractmethod
    async def remove_access_entry(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> bool:
        """Delete an allow/deny entry; True if one existed"""

    # Monitoring queries over stored visitors

    @abstractmethod
    async def list_visitors(
        self,
        user_type: Optional[UserType] = None,
        min_score: int = 0,
        max_score: int = 100,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[VisitorSummary], int]:
        """
        Visitors filtered by type and score range, most recently seen first

        Returns the requested slice and the total number of matches. Each
        summary carries the visitor's latest confidence and profile.
        """

    @abstractmethod
    async def get_visitor_detail(
        self, visitor_id: str, score_limit: int = 10
    ) -> Optional[VisitorDetail]:
        """Visitor with its latest fingerprint and newest score records"""

    @abstractmethod
    async def get_statistics(self, recent_since: datetime) -> VisitorStatistics:
        """Visitor counts per type, plus visitors first seen since `recent_since`"""
