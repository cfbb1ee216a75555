"""
Pydantic schemas: engine inputs and outputs

Value objects passed into and returned from the trust engine and the
session analyzer. All of them are computed fresh per call and never mutated.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..exceptions import VisitorInputError
from ..utils import as_utc


# ============================================================================
# Enums
# ============================================================================


class UserType(str, Enum):
    """Visitor classification"""

    HUMAN = "human"
    SUSPICIOUS = "suspicious"
    BOT = "bot"
    HIGH_RISK = "high_risk"


class RiskLevel(str, Enum):
    """Severity bucket derived from the total score only"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DetectionFlag(str, Enum):
    """Condition tags explaining which sub-scores raised concern"""

    SUSPICIOUS_IP = "suspicious_ip"
    SUSPICIOUS_USER_AGENT = "suspicious_user_agent"
    SUSPICIOUS_FINGERPRINT = "suspicious_fingerprint"
    NO_HUMAN_BEHAVIOR = "no_human_behavior"
    AUTOMATED_PATTERN = "automated_pattern"


class EventCategory(str, Enum):
    """Behavior event category"""

    MOUSE_MOVE = "mouse_move"
    CLICK = "click"
    SCROLL = "scroll"
    KEYDOWN = "keydown"
    PAGE_LOAD = "page_load"
    CONVERSION = "conversion"
    POPUP_TRIGGERED = "popup_triggered"
    OTHER = "other"


_CATEGORY_VALUES = frozenset(c.value for c in EventCategory)


class SessionVerdict(str, Enum):
    """Session analyzer result"""

    HUMAN = "human"
    AI = "ai"  # ambiguous / automation-assisted
    BOT = "bot"
    UNKNOWN = "unknown"  # empty batch


class AccessListType(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class ListKind(str, Enum):
    IP = "ip"
    FINGERPRINT = "fingerprint"


# ============================================================================
# Inputs
# ============================================================================


class VisitorInput(BaseModel):
    """
    Per-request visitor signals

    Every field is optional and defaults to the empty string; absence is a
    scoring signal, not an error. Non-string values are rejected.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    session_id: str = ""
    ip: str = ""
    user_agent: str = ""
    referer: str = ""
    fingerprint_hash: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @classmethod
    def parse(cls, data: Any) -> "VisitorInput":
        """
        Validate raw upstream data into a VisitorInput

        Args:
            data: mapping of visitor fields (or an existing VisitorInput)

        Returns:
            VisitorInput: validated input

        Raises:
            VisitorInputError: a field holds a non-string value or data is not a mapping
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise VisitorInputError(
                message=f"Invalid visitor input: {e.error_count()} error(s)",
                errors=e.errors(include_url=False, include_context=False),
            ) from e


class BehaviorEvent(BaseModel):
    """One recorded interaction (or page load) in a browsing session"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_id: str = ""
    category: EventCategory = Field(
        default=EventCategory.OTHER,
        validation_alias=AliasChoices("category", "action_type"),
    )
    timestamp: datetime = Field(
        validation_alias=AliasChoices("timestamp", "created_at", "occurred_at")
    )
    page_url: str = ""
    ip_address: str = Field(default="", validation_alias=AliasChoices("ip_address", "ip"))
    user_agent: str = ""
    referer: str = ""
    mouse_movements: list[Any] = Field(default_factory=list)
    click_events: list[Any] = Field(default_factory=list)
    scroll_events: list[Any] = Field(default_factory=list)
    keyboard_events: list[Any] = Field(default_factory=list)
    time_on_page: float = 0
    interaction_count: int = 0

    @field_validator("category", mode="before")
    @classmethod
    def unknown_category_is_other(cls, v: Any) -> Any:
        if v is None:
            return EventCategory.OTHER
        if isinstance(v, str) and v not in _CATEGORY_VALUES:
            return EventCategory.OTHER
        return v

    @field_validator(
        "page_url", "ip_address", "user_agent", "referer", mode="before"
    )
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator(
        "mouse_movements", "click_events", "scroll_events", "keyboard_events",
        mode="before",
    )
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)


class FingerprintPayload(BaseModel):
    """Device characteristics submitted by the browser collection script"""

    model_config = ConfigDict(str_strip_whitespace=True)

    fingerprint_hash: str = ""
    canvas: str = ""
    webgl: str = ""
    audio: str = ""
    fonts: list[str] = Field(default_factory=list)
    plugins: list[str] = Field(default_factory=list)
    touch_support: bool = False
    hardware_concurrency: int = Field(default=0, ge=0)
    device_memory: float = Field(default=0, ge=0)
    color_depth: int = Field(default=0, ge=0)


# ============================================================================
# Outputs
# ============================================================================


class ScoreBreakdown(BaseModel):
    """Six weighted sub-scores"""

    model_config = ConfigDict(frozen=True)

    ip: int = Field(..., ge=0)
    user_agent: int = Field(..., ge=0)
    request_pattern: int = Field(..., ge=0)
    fingerprint: int = Field(..., ge=0)
    behavior: int = Field(..., ge=0)
    source: int = Field(..., ge=0)

    @property
    def total(self) -> int:
        return (
            self.ip
            + self.user_agent
            + self.request_pattern
            + self.fingerprint
            + self.behavior
            + self.source
        )

    def as_dict(self) -> dict[str, int]:
        return self.model_dump()


class ClassificationResult(BaseModel):
    """Trust engine output for one visitor"""

    model_config = ConfigDict(frozen=True)

    total_score: int = Field(..., ge=0, le=100)
    breakdown: ScoreBreakdown
    confidence: float = Field(..., ge=0.0, le=1.0)
    user_type: UserType
    risk_level: RiskLevel
    flags: list[DetectionFlag] = Field(default_factory=list)
    timestamp: datetime

    @model_validator(mode="after")
    def total_matches_breakdown(self) -> "ClassificationResult":
        if self.total_score != self.breakdown.total:
            raise ValueError(
                f"total_score {self.total_score} != breakdown sum {self.breakdown.total}"
            )
        return self


class SessionVisitor(BaseModel):
    """Who a session was: taken from its earliest event"""

    model_config = ConfigDict(frozen=True)

    ip_address: str = ""
    user_agent: str = ""
    referer: str = ""
    page_url: str = ""

    @classmethod
    def from_event(cls, event: BehaviorEvent) -> "SessionVisitor":
        return cls(
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            referer=event.referer,
            page_url=event.page_url,
        )


class SessionAnalysis(BaseModel):
    """Session analyzer output (subtractive 0-100 scale, not the weighted total)"""

    model_config = ConfigDict(frozen=True)

    session_id: str
    score: int = Field(..., ge=0, le=100)
    result: SessionVerdict
    reasons: list[str]
    behavior_count: int = 0
    session_duration: float = 0.0
    unique_action_count: int = 0
    analyzed_at: datetime
    user_data: Optional[SessionVisitor] = None


class SessionStats(BaseModel):
    total: int = 0
    human: int = 0
    ai: int = 0
    bot: int = 0


class SessionReport(BaseModel):
    """One page of bulk session analyses"""

    data: list[SessionAnalysis]
    stats: SessionStats
    page: int
    per_page: int
    total: int
    total_pages: int


class AccessListMatch(BaseModel):
    """Allow/deny list hit as returned by the store (expiry not yet applied)"""

    model_config = ConfigDict(frozen=True)

    expires_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        """A match counts only if it has no expiry or expires in the future"""
        return self.expires_at is None or as_utc(self.expires_at) > as_utc(now)


class VisitEvaluation(BaseModel):
    """Result of recording and classifying one visit"""

    visitor_id: str
    created: bool
    result: ClassificationResult


class VisitorProfile(BaseModel):
    """Network/header snapshot stored when a visitor was first seen"""

    model_config = ConfigDict(frozen=True)

    ip_address: str = ""
    user_agent: str = ""
    referer: str = ""
    created_at: datetime


class VisitorSummary(BaseModel):
    """Stored visitor enriched with its latest confidence and profile"""

    model_config = ConfigDict(frozen=True)

    visitor_id: str
    session_id: str = ""
    fingerprint_hash: str = ""
    user_type: UserType
    score: int
    confidence: float = 0.0
    first_visit_at: datetime
    last_visit_at: datetime
    visit_count: int = 1
    is_whitelisted: bool = False
    is_blacklisted: bool = False
    manual_override: bool = False
    notes: str = ""
    profile: Optional[VisitorProfile] = None


class StoredFingerprint(FingerprintPayload):
    created_at: datetime


class ScoreHistoryEntry(BaseModel):
    """One past classification of a visitor"""

    model_config = ConfigDict(frozen=True)

    total_score: int
    breakdown: ScoreBreakdown
    confidence: float
    user_type: UserType
    risk_level: RiskLevel
    flags: list[DetectionFlag] = Field(default_factory=list)
    created_at: datetime


class VisitorDetail(BaseModel):
    """A visitor with its latest fingerprint and recent score history"""

    visitor: VisitorSummary
    fingerprint: Optional[StoredFingerprint] = None
    scores: list[ScoreHistoryEntry] = Field(default_factory=list)


class VisitorPage(BaseModel):
    """One page of stored visitors, most recently seen first"""

    data: list[VisitorSummary]
    page: int
    per_page: int
    total: int
    total_pages: int


class VisitorStatistics(BaseModel):
    """Visitor counts per classification"""

    total: int = 0
    human: int = 0
    bot: int = 0  # bot and high_risk
    suspicious: int = 0
    recent: int = 0  # first seen since the cutoff

    @property
    def bot_percentage(self) -> float:
        if not self.total:
            return 0.0
        return round(self.bot / self.total * 100, 2)


TIMESTAMP_FIELDS = ("timestamp", "created_at", "occurred_at")


def coerce_events(
    events: Iterable[Any], default_timestamp: Optional[datetime] = None
) -> list[BehaviorEvent]:
    """
    Accept BehaviorEvent instances or raw mappings

    Args:
        events: events in any order
        default_timestamp: timestamp for raw mappings that carry none

    Returns:
        list[BehaviorEvent]: validated events

    Raises:
        VisitorInputError: a raw event could not be validated
    """
    coerced = []
    for index, event in enumerate(events):
        if isinstance(event, BehaviorEvent):
            coerced.append(event)
            continue

        if (
            default_timestamp is not None
            and isinstance(event, Mapping)
            and not any(event.get(k) for k in TIMESTAMP_FIELDS)
        ):
            event = {**event, "timestamp": default_timestamp}

        try:
            coerced.append(BehaviorEvent.model_validate(event))
        except ValidationError as e:
            raise VisitorInputError(
                message=f"Invalid behavior event at index {index}",
                errors=e.errors(include_url=False, include_context=False),
            ) from e

    return coerced
