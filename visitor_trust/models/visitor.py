"""
Visitor and VisitorProfile models

A visitor is a browsing unit keyed by session id or fingerprint hash. Each
first sighting also appends a profile row carrying the request's IP and
User-Agent; the IP frequency check counts these rows.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from ..utils import utcnow
from .base import Base


def new_id() -> str:
    return str(uuid.uuid4())


class VisitorRecord(Base):
    """Visitor model (mutable: updated via atomic upsert only)"""

    __tablename__ = "visitors"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(128), nullable=False, default="", comment="Session token")
    fingerprint_hash = Column(String(128), nullable=False, default="")
    first_visit_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_visit_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    visit_count = Column(Integer, nullable=False, default=1)
    user_type = Column(String(20), nullable=False, default="suspicious")
    score = Column(Integer, nullable=False, default=0)
    is_whitelisted = Column(Boolean, nullable=False, default=False)
    is_blacklisted = Column(Boolean, nullable=False, default=False)
    manual_override = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=False, default="")
    version = Column(Integer, nullable=False, default=1, comment="Bumped on every update")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_visitors_session_id", "session_id"),
        Index("idx_visitors_fingerprint_hash", "fingerprint_hash"),
        Index("idx_visitors_user_type", "user_type"),
    )

    def __repr__(self):
        return f"<VisitorRecord(id={self.id}, user_type={self.user_type}, score={self.score})>"


class VisitorProfileRecord(Base):
    """Network/header snapshot appended when a visitor is first seen"""

    __tablename__ = "visitor_profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    visitor_id = Column(String(36), nullable=False)
    ip_address = Column(String(64), nullable=False, default="")
    user_agent = Column(Text, nullable=False, default="")
    referer = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_visitor_profiles_visitor_id", "visitor_id"),
        Index("idx_visitor_profiles_ip_created", "ip_address", "created_at"),
    )

    def __repr__(self):
        return f"<VisitorProfileRecord(visitor_id={self.visitor_id}, ip={self.ip_address})>"
