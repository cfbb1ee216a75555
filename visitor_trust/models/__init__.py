"""
Visitor trust data models

SQLAlchemy records owned by the signal store and the Pydantic value objects
exchanged with the engine.
"""

from .base import Base, JSONType
from .visitor import VisitorRecord, VisitorProfileRecord
from .fingerprint import FingerprintRecord
from .behavior_event import BehaviorEventRecord
from .score_record import ScoreRecord, SessionAnalysisRecord
from .access_list_entry import AccessListEntry
from .schemas import (
    AccessListMatch,
    AccessListType,
    BehaviorEvent,
    ClassificationResult,
    DetectionFlag,
    EventCategory,
    FingerprintPayload,
    ListKind,
    RiskLevel,
    ScoreBreakdown,
    ScoreHistoryEntry,
    SessionAnalysis,
    SessionReport,
    SessionStats,
    SessionVerdict,
    SessionVisitor,
    StoredFingerprint,
    UserType,
    VisitEvaluation,
    VisitorDetail,
    VisitorInput,
    VisitorPage,
    VisitorProfile,
    VisitorStatistics,
    VisitorSummary,
)

__all__ = [
    # Base
    "Base",
    "JSONType",
    # Records
    "VisitorRecord",
    "VisitorProfileRecord",
    "FingerprintRecord",
    "BehaviorEventRecord",
    "ScoreRecord",
    "SessionAnalysisRecord",
    "AccessListEntry",
    # Schemas
    "AccessListMatch",
    "AccessListType",
    "BehaviorEvent",
    "ClassificationResult",
    "DetectionFlag",
    "EventCategory",
    "FingerprintPayload",
    "ListKind",
    "RiskLevel",
    "ScoreBreakdown",
    "ScoreHistoryEntry",
    "SessionAnalysis",
    "SessionReport",
    "SessionStats",
    "SessionVerdict",
    "SessionVisitor",
    "StoredFingerprint",
    "UserType",
    "VisitEvaluation",
    "VisitorDetail",
    "VisitorInput",
    "VisitorPage",
    "VisitorProfile",
    "VisitorStatistics",
    "VisitorSummary",
]
