"""
AccessListEntry model

Allow and deny entries for IP addresses and fingerprint hashes. An entry
with an `expires_at` in the past no longer matches.
"""

from sqlalchemy import Column, DateTime, Enum, Index, String, Text, UniqueConstraint

from ..utils import utcnow
from .base import Base
from .schemas import AccessListType, ListKind
from .visitor import new_id


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class AccessListEntry(Base):
    """Allow/deny list entry model"""

    __tablename__ = "access_list_entries"

    id = Column(String(36), primary_key=True, default=new_id)
    list_type = Column(
        Enum(AccessListType, native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    kind = Column(
        Enum(ListKind, native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    value = Column(String(255), nullable=False)
    reason = Column(Text, nullable=False, default="")
    added_by = Column(String(64), nullable=True)
    added_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=True, comment="NULL = never expires")

    __table_args__ = (
        UniqueConstraint("list_type", "kind", "value", name="uq_access_list_entry"),
        Index("idx_access_list_entries_expires_at", "expires_at"),
    )

    def __repr__(self):
        return f"<AccessListEntry(list={self.list_type.value}, kind={self.kind.value}, value={self.value})>"
