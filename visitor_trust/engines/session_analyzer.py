"""
Session analyzer - subtractive classifier over a batch of behavior events

Scores a whole session on its own 0-100 scale (start at 100, debit per
finding) and labels it human, ai or bot. Independent of the weighted trust
score produced by VisitorTrustEngine.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from ..models.schemas import (
    EventCategory,
    SessionAnalysis,
    SessionVerdict,
    SessionVisitor,
    coerce_events,
)
from ..utils import utcnow
from ..utils.metrics import record_session_analysis
from .behavior_statistics import BehaviorStatistics, SessionStatistics

logger = logging.getLogger(__name__)


class SessionAnalyzer:
    """
    Session behavior analyzer

    Findings (each debits the score once):
    - Metronomic timing: interval stddev < 0.5s and mean < 2s (-25)
    - Superhuman speed: mean interval < 0.5s (-20)
    - Burst: > 5 events in under 3s (-15)
    - Idle: session over 1 hour with < 3 events (-10)
    - Monotone: > 3 events of a single category (-15)
    - IP rotation: > 3 distinct IPs (-20)
    - UA rotation: > 2 distinct user agents (-15)
    - Page loads only (-10)
    - Conversion within < 3 events (-15)
    """

    START_SCORE = 100

    # Timing
    REGULAR_STDDEV_MAX = 0.5
    REGULAR_MEAN_MAX = 2.0
    REGULAR_PENALTY = 25
    FAST_MEAN_MAX = 0.5
    FAST_PENALTY = 20

    # Duration
    BURST_DURATION_MAX = 3.0
    BURST_MIN_EVENTS = 5
    BURST_PENALTY = 15
    IDLE_DURATION_MIN = 3600.0
    IDLE_MAX_EVENTS = 3
    IDLE_PENALTY = 10

    # Diversity
    SINGLE_CATEGORY_MIN_EVENTS = 3
    SINGLE_CATEGORY_PENALTY = 15
    MAX_UNIQUE_IPS = 3
    IP_ROTATION_PENALTY = 20
    MAX_UNIQUE_USER_AGENTS = 2
    UA_ROTATION_PENALTY = 15

    # Journey
    PAGE_LOAD_ONLY_PENALTY = 10
    QUICK_CONVERSION_MAX_EVENTS = 3
    QUICK_CONVERSION_PENALTY = 15

    # Verdict thresholds
    HUMAN_MIN_SCORE = 70
    AI_MIN_SCORE = 40

    def __init__(
        self,
        statistics: Optional[BehaviorStatistics] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.statistics = statistics or BehaviorStatistics()
        self.clock = clock

    def analyze_session_batch(
        self, session_id: str, events: Iterable[Any]
    ) -> SessionAnalysis:
        """
        Analyze one session's behavior events

        Args:
            session_id: session identifier
            events: BehaviorEvent instances (or raw mappings), any order; raw
                events without a timestamp are stamped with the current time

        Returns:
            SessionAnalysis: score, verdict and reasons

        Raises:
            VisitorInputError: a raw event could not be validated
        """
        now = self.clock()
        events = coerce_events(events, default_timestamp=now)

        if not events:
            result = SessionAnalysis(
                session_id=session_id,
                score=0,
                result=SessionVerdict.UNKNOWN,
                reasons=["No behavior data recorded for session"],
                analyzed_at=now,
            )
            record_session_analysis(result.result.value)
            return result

        stats = self.statistics.summarize(events)
        score = self.START_SCORE
        reasons: list[str] = []

        for penalty, reason in self._findings(stats):
            score -= penalty
            reasons.append(reason)

        score = max(0, min(100, score))
        if not reasons:
            reasons.append("Normal behavior pattern")

        result = SessionAnalysis(
            session_id=session_id,
            score=score,
            result=self._verdict(score),
            reasons=reasons,
            behavior_count=stats.event_count,
            session_duration=stats.duration_seconds,
            unique_action_count=stats.unique_category_count,
            analyzed_at=now,
            user_data=SessionVisitor.from_event(min(events, key=lambda e: e.timestamp)),
        )

        record_session_analysis(result.result.value)
        logger.debug(
            f"Session analyzed: score={score}, result={result.result.value}, "
            f"findings={len(reasons)}",
            extra={"session_id": session_id},
        )
        return result

    def _findings(self, stats: SessionStatistics) -> list[tuple[int, str]]:
        findings = []

        intervals = stats.intervals
        if intervals is not None:
            if (
                intervals.stddev < self.REGULAR_STDDEV_MAX
                and intervals.mean < self.REGULAR_MEAN_MAX
            ):
                findings.append(
                    (
                        self.REGULAR_PENALTY,
                        f"Highly regular event timing (stddev {intervals.stddev:.2f}s)",
                    )
                )
            if intervals.mean < self.FAST_MEAN_MAX:
                findings.append(
                    (
                        self.FAST_PENALTY,
                        f"Events faster than human reaction (mean {intervals.mean:.2f}s)",
                    )
                )

        duration = stats.duration_seconds
        if duration < self.BURST_DURATION_MAX and stats.event_count > self.BURST_MIN_EVENTS:
            findings.append(
                (
                    self.BURST_PENALTY,
                    f"{stats.event_count} events within {duration:.1f}s",
                )
            )
        if duration > self.IDLE_DURATION_MIN and stats.event_count < self.IDLE_MAX_EVENTS:
            findings.append(
                (self.IDLE_PENALTY, "Long session with almost no interaction")
            )

        if (
            stats.unique_category_count == 1
            and stats.event_count > self.SINGLE_CATEGORY_MIN_EVENTS
        ):
            findings.append(
                (self.SINGLE_CATEGORY_PENALTY, "Single repeated action type")
            )

        if stats.unique_ip_count > self.MAX_UNIQUE_IPS:
            findings.append(
                (
                    self.IP_ROTATION_PENALTY,
                    f"Session used {stats.unique_ip_count} distinct IP addresses",
                )
            )
        if stats.unique_user_agent_count > self.MAX_UNIQUE_USER_AGENTS:
            findings.append(
                (
                    self.UA_ROTATION_PENALTY,
                    f"Session used {stats.unique_user_agent_count} distinct user agents",
                )
            )

        if stats.has_only(EventCategory.PAGE_LOAD):
            findings.append(
                (self.PAGE_LOAD_ONLY_PENALTY, "Page loads only, no interaction")
            )

        if (
            stats.has_any(EventCategory.CONVERSION)
            and stats.event_count < self.QUICK_CONVERSION_MAX_EVENTS
        ):
            findings.append(
                (self.QUICK_CONVERSION_PENALTY, "Conversion with almost no prior activity")
            )

        return findings

    def _verdict(self, score: int) -> SessionVerdict:
        if score >= self.HUMAN_MIN_SCORE:
            return SessionVerdict.HUMAN
        if score >= self.AI_MIN_SCORE:
            return SessionVerdict.AI
        return SessionVerdict.BOT
