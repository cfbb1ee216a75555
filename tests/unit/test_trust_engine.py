"""
Trust engine, confidence estimator and classifier unit tests
"""

from datetime import timedelta

import pytest

from visitor_trust.engines.classifier import UserTypeClassifier
from visitor_trust.engines.confidence import ConfidenceEstimator
from visitor_trust.engines.policy import DEFAULT_WEIGHTS, ScoringPolicy
from visitor_trust.engines.trust_engine import VisitorTrustEngine
from visitor_trust.exceptions import PolicyConfigurationError, VisitorInputError
from visitor_trust.models.schemas import (
    AccessListMatch,
    AccessListType,
    DetectionFlag,
    RiskLevel,
    ScoreBreakdown,
    UserType,
    VisitorInput,
)
from visitor_trust.utils.metrics import registry

CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

FULL_MARKS = ScoreBreakdown(
    ip=20, user_agent=15, request_pattern=15, fingerprint=20, behavior=20, source=10
)


@pytest.fixture
def engine(mock_store, clock):
    return VisitorTrustEngine(mock_store, clock=clock)


class TestScoringPolicy:
    """Scoring policy validation"""

    def test_default_weights_sum_to_100(self):
        policy = ScoringPolicy()
        assert sum(policy.weights.values()) == 100
        assert dict(policy.weights) == DEFAULT_WEIGHTS

    def test_weights_not_summing_to_100_rejected(self):
        weights = dict(DEFAULT_WEIGHTS, source=15)
        with pytest.raises(PolicyConfigurationError):
            ScoringPolicy(weights=weights)

    def test_missing_component_rejected(self):
        weights = {k: v for k, v in DEFAULT_WEIGHTS.items() if k != "source"}
        weights["ip"] += 10
        with pytest.raises(PolicyConfigurationError):
            ScoringPolicy(weights=weights)

    def test_weights_are_read_only(self):
        policy = ScoringPolicy()
        with pytest.raises(TypeError):
            policy.weights["ip"] = 50

    def test_clamp(self):
        policy = ScoringPolicy()
        assert policy.clamp("source", -4) == 0
        assert policy.clamp("source", 14) == 10
        assert policy.clamp("ip", 12) == 12


class TestConfidenceEstimator:
    """Confidence = completeness x consistency"""

    def test_complete_and_consistent(self):
        estimator = ConfidenceEstimator(ScoringPolicy())
        visitor = VisitorInput(session_id="s", ip="1.1.1.1", user_agent="ua", fingerprint_hash="f")
        assert estimator.estimate(FULL_MARKS, visitor) == 1.0

    def test_no_identifying_data_gives_zero(self):
        estimator = ConfidenceEstimator(ScoringPolicy())
        assert estimator.estimate(FULL_MARKS, VisitorInput(referer="https://x.test")) == 0.0

    def test_partial_completeness(self):
        estimator = ConfidenceEstimator(ScoringPolicy())
        visitor = VisitorInput(ip="1.1.1.1", user_agent="ua")
        assert estimator.estimate(FULL_MARKS, visitor) == 0.4

    def test_disagreeing_scores_lower_confidence(self):
        estimator = ConfidenceEstimator(ScoringPolicy())
        visitor = VisitorInput(session_id="s", ip="1.1.1.1", user_agent="ua", fingerprint_hash="f")
        mixed = ScoreBreakdown(
            ip=20, user_agent=0, request_pattern=15, fingerprint=0, behavior=20, source=10
        )
        confidence = estimator.estimate(mixed, visitor)
        assert 0.0 <= confidence < 1.0
        assert confidence == round(confidence, 2)


class TestUserTypeClassifier:
    """User type, risk level and flag thresholds"""

    @pytest.mark.parametrize(
        "total,confidence,expected",
        [
            (80, 0.7, UserType.HUMAN),
            (95, 0.69, UserType.SUSPICIOUS),
            (60, 0.5, UserType.SUSPICIOUS),
            (40, 0.0, UserType.SUSPICIOUS),
            (39, 1.0, UserType.BOT),
            (20, 0.0, UserType.BOT),
            (19, 1.0, UserType.HIGH_RISK),
            (0, 0.0, UserType.HIGH_RISK),
        ],
    )
    def test_user_type(self, total, confidence, expected):
        assert UserTypeClassifier().determine_user_type(total, confidence) == expected

    @pytest.mark.parametrize(
        "total,expected",
        [
            (100, RiskLevel.LOW),
            (80, RiskLevel.LOW),
            (79, RiskLevel.MEDIUM),
            (60, RiskLevel.MEDIUM),
            (59, RiskLevel.HIGH),
            (40, RiskLevel.HIGH),
            (39, RiskLevel.CRITICAL),
        ],
    )
    def test_risk_level(self, total, expected):
        assert UserTypeClassifier().determine_risk_level(total) == expected

    @pytest.mark.parametrize("confidence", [0.0, 0.5, 0.7, 1.0])
    def test_monotonic_in_total(self, confidence):
        rank = {
            UserType.HIGH_RISK: 0,
            UserType.BOT: 1,
            UserType.SUSPICIOUS: 2,
            UserType.HUMAN: 3,
        }
        classifier = UserTypeClassifier()
        ranks = [
            rank[classifier.determine_user_type(total, confidence)] for total in range(101)
        ]
        assert ranks == sorted(ranks)

    def test_flags_in_fixed_order(self):
        breakdown = ScoreBreakdown(
            ip=9, user_agent=7, request_pattern=7, fingerprint=9, behavior=9, source=0
        )
        assert UserTypeClassifier().detection_flags(breakdown) == [
            DetectionFlag.SUSPICIOUS_IP,
            DetectionFlag.SUSPICIOUS_USER_AGENT,
            DetectionFlag.SUSPICIOUS_FINGERPRINT,
            DetectionFlag.NO_HUMAN_BEHAVIOR,
            DetectionFlag.AUTOMATED_PATTERN,
        ]

    def test_no_flags_at_thresholds(self):
        breakdown = ScoreBreakdown(
            ip=10, user_agent=8, request_pattern=8, fingerprint=10, behavior=10, source=0
        )
        assert UserTypeClassifier().detection_flags(breakdown) == []


class TestVisitorTrustEngine:
    """End-to-end classification with a mocked store"""

    @pytest.mark.asyncio
    async def test_all_empty_input(self, engine, now):
        result = await engine.classify_visitor({})

        assert result.breakdown.as_dict() == {
            "ip": 0,
            "user_agent": 0,
            "request_pattern": 10,
            "fingerprint": 10,
            "behavior": 10,
            "source": 7,
        }
        assert result.total_score == 37
        assert result.confidence == 0.0
        assert result.user_type == UserType.BOT
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.flags == [
            DetectionFlag.SUSPICIOUS_IP,
            DetectionFlag.SUSPICIOUS_USER_AGENT,
        ]
        assert result.timestamp == now

    @pytest.mark.asyncio
    async def test_well_behaved_visitor_is_human(
        self, engine, mock_store, make_event, now
    ):
        mock_store.count_and_first_timestamp_by_session.return_value = (
            3,
            now - timedelta(minutes=2),
        )
        mock_store.fetch_behavior_events_by_session.return_value = [
            make_event(0, "mouse_move", mouse_movements=[{"x": 10, "y": 20}]),
            make_event(3, "click", click_events=[{"x": 10, "y": 20}]),
            make_event(8, "scroll", scroll_events=[{"y": 400}]),
        ]

        result = await engine.classify_visitor(
            VisitorInput(
                session_id="sess-1",
                ip="203.0.113.5",
                user_agent=CHROME_UA,
                referer="https://www.google.com/search?q=running+shoes",
                fingerprint_hash="a1b2c3",
            )
        )

        assert result.total_score == 100
        assert result.confidence == 1.0
        assert result.user_type == UserType.HUMAN
        assert result.risk_level == RiskLevel.LOW
        assert result.flags == []

    @pytest.mark.asyncio
    async def test_googlebot_user_agent(self, engine):
        result = await engine.classify_visitor(
            {"user_agent": "Mozilla/5.0 (compatible; Googlebot/2.1)", "ip": "66.249.66.1"}
        )
        assert result.breakdown.user_agent == 0
        assert DetectionFlag.SUSPICIOUS_USER_AGENT in result.flags

    @pytest.mark.asyncio
    async def test_denylisted_ip_flagged(self, engine, mock_store):
        async def lookup(list_type, kind, value):
            return AccessListMatch() if list_type == AccessListType.DENY else None

        mock_store.lookup_access_list.side_effect = lookup

        result = await engine.classify_visitor({"ip": "203.0.113.5", "user_agent": CHROME_UA})

        assert result.breakdown.ip == 0
        assert DetectionFlag.SUSPICIOUS_IP in result.flags

    @pytest.mark.asyncio
    async def test_total_is_exact_sum(self, engine):
        result = await engine.classify_visitor(
            {"ip": "35.1.2.3", "user_agent": "Mozilla/5.0 Firefox/115.0 Gecko", "referer": "x"}
        )
        assert result.total_score == sum(result.breakdown.as_dict().values())

    @pytest.mark.asyncio
    async def test_none_fields_treated_as_empty(self, engine):
        result = await engine.classify_visitor({"ip": None, "session_id": None})
        assert result.total_score == 37

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [{"ip": 12345}, {"user_agent": ["a"]}, "not-a-mapping"])
    async def test_unparseable_input_rejected(self, engine, bad):
        with pytest.raises(VisitorInputError) as exc_info:
            await engine.classify_visitor(bad)
        assert exc_info.value.error_code == "visitor_input_invalid"

    @pytest.mark.asyncio
    async def test_classification_recorded_in_metrics(self, engine):
        labels = {"user_type": "bot", "risk_level": "critical"}
        before = registry.get_sample_value("visitor_classifications_total", labels) or 0

        await engine.classify_visitor({})

        after = registry.get_sample_value("visitor_classifications_total", labels)
        assert after == before + 1
