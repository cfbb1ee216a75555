"""
VisitorFingerprint model

Browser-side device characteristics (canvas, WebGL, audio, fonts, plugins)
submitted by the collection script, plus the hash derived from them.
"""

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Text

from ..utils import utcnow
from .base import Base, JSONType
from .visitor import new_id


class FingerprintRecord(Base):
    """Device fingerprint model"""

    __tablename__ = "visitor_fingerprints"

    id = Column(String(36), primary_key=True, default=new_id)
    visitor_id = Column(String(36), nullable=False)
    fingerprint_hash = Column(String(128), nullable=False, default="")
    canvas = Column(Text, nullable=False, default="", comment="Canvas rendering hash")
    webgl = Column(Text, nullable=False, default="", comment="WebGL vendor/renderer info")
    audio = Column(Text, nullable=False, default="", comment="Audio rendering hash")
    fonts = Column(JSONType, nullable=False, default=list)
    plugins = Column(JSONType, nullable=False, default=list)
    touch_support = Column(Boolean, nullable=False, default=False)
    hardware_concurrency = Column(Integer, nullable=False, default=0)
    device_memory = Column(Float, nullable=False, default=0, comment="GiB, as reported by navigator.deviceMemory")
    color_depth = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_visitor_fingerprints_visitor_id", "visitor_id"),
        Index("idx_visitor_fingerprints_hash", "fingerprint_hash"),
    )

    def __repr__(self):
        return f"<FingerprintRecord(visitor_id={self.visitor_id}, hash={self.fingerprint_hash})>"
