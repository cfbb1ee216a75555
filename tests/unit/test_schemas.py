"""
Schema validation unit tests
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from visitor_trust.exceptions import VisitorInputError
from visitor_trust.models.schemas import (
    AccessListMatch,
    BehaviorEvent,
    ClassificationResult,
    EventCategory,
    RiskLevel,
    ScoreBreakdown,
    UserType,
    VisitorInput,
)


class TestVisitorInput:
    def test_defaults_to_empty_strings(self):
        visitor = VisitorInput.parse({})
        assert visitor.model_dump() == {
            "session_id": "",
            "ip": "",
            "user_agent": "",
            "referer": "",
            "fingerprint_hash": "",
        }

    def test_strips_whitespace_and_none(self):
        visitor = VisitorInput.parse({"ip": "  10.0.0.1 ", "referer": None})
        assert visitor.ip == "10.0.0.1"
        assert visitor.referer == ""

    def test_non_string_value_rejected(self):
        with pytest.raises(VisitorInputError) as exc_info:
            VisitorInput.parse({"session_id": {"nested": True}})

        errors = exc_info.value.errors
        assert errors[0]["loc"] == ("session_id",)

    def test_parse_returns_existing_instance(self):
        visitor = VisitorInput(ip="10.0.0.1")
        assert VisitorInput.parse(visitor) is visitor

    def test_immutable(self):
        visitor = VisitorInput(ip="10.0.0.1")
        with pytest.raises(ValidationError):
            visitor.ip = "10.0.0.2"


class TestBehaviorEvent:
    def test_unknown_category_maps_to_other(self):
        event = BehaviorEvent.model_validate(
            {"action_type": "hover", "created_at": "2026-01-15T12:00:00"}
        )
        assert event.category == EventCategory.OTHER

    def test_naive_timestamp_is_utc(self):
        event = BehaviorEvent(timestamp=datetime(2026, 1, 15, 12, 0))
        assert event.timestamp.tzinfo is not None
        assert event.timestamp.utcoffset() == timedelta(0)

    def test_offset_timestamp_converted_to_utc(self):
        tz = timezone(timedelta(hours=9))
        event = BehaviorEvent(timestamp=datetime(2026, 1, 15, 21, 0, tzinfo=tz))
        assert event.timestamp == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_null_sample_lists(self):
        event = BehaviorEvent.model_validate(
            {"timestamp": "2026-01-15T12:00:00Z", "mouse_movements": None, "ip": "10.0.0.1"}
        )
        assert event.mouse_movements == []
        assert event.ip_address == "10.0.0.1"


class TestClassificationResult:
    def test_total_must_match_breakdown(self):
        breakdown = ScoreBreakdown(
            ip=20, user_agent=15, request_pattern=15, fingerprint=20, behavior=20, source=10
        )
        with pytest.raises(ValidationError):
            ClassificationResult(
                total_score=90,
                breakdown=breakdown,
                confidence=1.0,
                user_type=UserType.HUMAN,
                risk_level=RiskLevel.LOW,
                timestamp=datetime.now(timezone.utc),
            )


class TestAccessListMatch:
    def test_expiry(self):
        now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert AccessListMatch().is_active(now)
        assert AccessListMatch(expires_at=now + timedelta(seconds=1)).is_active(now)
        assert not AccessListMatch(expires_at=now).is_active(now)
        # naive expiry read back from SQLite is treated as UTC
        assert AccessListMatch(expires_at=datetime(2026, 1, 15, 13, 0)).is_active(now)
