"""
Score history and session analysis models

Append-only outputs of the trust engine and the session analyzer.
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from ..utils import utcnow
from .base import Base, JSONType
from .visitor import new_id


class ScoreRecord(Base):
    """One classification of a visitor"""

    __tablename__ = "score_history"

    id = Column(String(36), primary_key=True, default=new_id)
    visitor_id = Column(String(36), nullable=False)
    total_score = Column(Integer, nullable=False)
    ip_score = Column(Integer, nullable=False)
    user_agent_score = Column(Integer, nullable=False)
    request_pattern_score = Column(Integer, nullable=False)
    fingerprint_score = Column(Integer, nullable=False)
    behavior_score = Column(Integer, nullable=False)
    source_score = Column(Integer, nullable=False)
    confidence = Column(Float, nullable=False)
    user_type = Column(String(20), nullable=False)
    risk_level = Column(String(20), nullable=False)
    flags = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_score_history_visitor_created", "visitor_id", "created_at"),
    )

    def __repr__(self):
        return f"<ScoreRecord(visitor_id={self.visitor_id}, total={self.total_score}, type={self.user_type})>"


class SessionAnalysisRecord(Base):
    """One retrospective session analysis"""

    __tablename__ = "session_analyses"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(128), nullable=False)
    score = Column(Integer, nullable=False)
    result = Column(String(20), nullable=False)
    reasons = Column(JSONType, nullable=False, default=list)
    behavior_count = Column(Integer, nullable=False, default=0)
    session_duration = Column(Float, nullable=False, default=0)
    unique_action_count = Column(Integer, nullable=False, default=0)
    user_data = Column(JSONType, nullable=True, comment="IP, User-Agent and referer of the first event")
    analyzed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("idx_session_analyses_session_id", "session_id"),)
