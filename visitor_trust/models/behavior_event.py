"""
BehaviorEvent model

Mouse, click, scroll and keyboard samples recorded per page within a session.
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text

from ..utils import utcnow
from .base import Base, JSONType
from .visitor import new_id


class BehaviorEventRecord(Base):
    """Behavior event model (append-only)"""

    __tablename__ = "behavior_events"

    id = Column(String(36), primary_key=True, default=new_id)
    visitor_id = Column(String(36), nullable=False, default="")
    session_id = Column(String(128), nullable=False)
    action_type = Column(String(32), nullable=False, default="other")
    page_url = Column(Text, nullable=False, default="")
    ip_address = Column(String(64), nullable=False, default="")
    user_agent = Column(Text, nullable=False, default="")
    referer = Column(Text, nullable=False, default="")
    mouse_movements = Column(JSONType, nullable=False, default=list)
    click_events = Column(JSONType, nullable=False, default=list)
    scroll_events = Column(JSONType, nullable=False, default=list)
    keyboard_events = Column(JSONType, nullable=False, default=list)
    time_on_page = Column(Float, nullable=False, default=0)
    interaction_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_behavior_events_session_created", "session_id", "created_at"),
    )

    def __repr__(self):
        return f"<BehaviorEventRecord(session_id={self.session_id}, action_type={self.action_type})>"
