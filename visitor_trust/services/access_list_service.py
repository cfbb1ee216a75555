"""
Access List Service - allow/deny list administration

Entries match exactly on (list type, kind, value) and may carry an expiry;
expired entries stay stored but no longer match.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from ..db.signal_store import SignalStore
from ..models.schemas import AccessListType, ListKind
from ..utils import utcnow

logger = logging.getLogger(__name__)


class AccessListService:
    """Allow/deny list manager"""

    def __init__(self, store: SignalStore, clock: Callable = utcnow):
        self.store = store
        self.clock = clock

    async def add_entry(
        self,
        list_type: AccessListType,
        kind: ListKind,
        value: str,
        reason: str = "",
        added_by: Optional[str] = None,
        ttl_days: Optional[int] = None,
    ) -> None:
        """
        Add (or replace) an allow/deny entry

        Args:
            list_type: allow or deny
            kind: ip or fingerprint
            value: exact IP address or fingerprint hash
            reason: free-text reason
            added_by: administrator id
            ttl_days: expiry in days (None = never expires)
        """
        value = value.strip()
        if not value:
            raise ValueError("Access list value must not be empty")

        expires_at = self.clock() + timedelta(days=ttl_days) if ttl_days else None
        await self.store.add_access_entry(
            AccessListType(list_type),
            ListKind(kind),
            value,
            reason=reason,
            expires_at=expires_at,
            added_by=added_by,
        )

    async def remove_entry(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> bool:
        """Remove an entry; returns False when nothing matched"""
        list_type, kind, value = AccessListType(list_type), ListKind(kind), value.strip()
        removed = await self.store.remove_access_entry(list_type, kind, value)
        if removed:
            logger.info(f"Access list entry removed: {list_type.value}/{kind.value}/{value}")
        return removed

    async def check_entry(
        self, list_type: AccessListType, kind: ListKind, value: str
    ) -> bool:
        """True if an unexpired entry matches"""
        match = await self.store.lookup_access_list(
            AccessListType(list_type), ListKind(kind), value.strip()
        )
        return match is not None and match.is_active(self.clock())
