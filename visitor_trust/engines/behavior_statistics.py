"""
Behavior statistics - timing and diversity measures over a session's events

Shared by the behavior scorer (presence of mouse/click/scroll data) and the
session analyzer (interval regularity, duration, category/IP/UA diversity).
"""

import statistics
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from ..models.schemas import BehaviorEvent, EventCategory


@dataclass(frozen=True)
class IntervalStats:
    """Mean and population standard deviation of inter-event gaps (seconds)"""

    count: int
    mean: float
    stddev: float


@dataclass(frozen=True)
class SessionStatistics:
    """Summary of one session's behavior events"""

    event_count: int
    intervals: Optional[IntervalStats]
    duration_seconds: float
    category_counts: Counter
    unique_ip_count: int
    unique_user_agent_count: int

    @property
    def unique_category_count(self) -> int:
        return len(self.category_counts)

    def has_only(self, category: EventCategory) -> bool:
        return self.event_count > 0 and set(self.category_counts) == {category}

    def has_any(self, category: EventCategory) -> bool:
        return self.category_counts.get(category, 0) > 0


class BehaviorStatistics:
    """Stateless helpers over lists of BehaviorEvent"""

    @staticmethod
    def sort_events(events: Iterable[BehaviorEvent]) -> list[BehaviorEvent]:
        return sorted(events, key=lambda e: e.timestamp)

    @staticmethod
    def intervals(sorted_events: list[BehaviorEvent]) -> list[float]:
        """
        Positive gaps between consecutive timestamps

        Zero gaps (events sharing a timestamp) are skipped.
        """
        gaps = []
        for prev, curr in zip(sorted_events, sorted_events[1:]):
            delta = (curr.timestamp - prev.timestamp).total_seconds()
            if delta > 0:
                gaps.append(delta)
        return gaps

    @staticmethod
    def interval_stats(intervals: list[float]) -> Optional[IntervalStats]:
        if not intervals:
            return None
        return IntervalStats(
            count=len(intervals),
            mean=statistics.fmean(intervals),
            stddev=statistics.pstdev(intervals),
        )

    @staticmethod
    def duration_seconds(sorted_events: list[BehaviorEvent]) -> float:
        if len(sorted_events) < 2:
            return 0.0
        return (sorted_events[-1].timestamp - sorted_events[0].timestamp).total_seconds()

    @staticmethod
    def distinct_count(values: Iterable[str]) -> int:
        """Number of distinct non-empty values"""
        return len({v for v in values if v})

    @staticmethod
    def has_mouse_data(events: Iterable[BehaviorEvent]) -> bool:
        return any(e.mouse_movements for e in events)

    @staticmethod
    def has_click_data(events: Iterable[BehaviorEvent]) -> bool:
        return any(e.click_events for e in events)

    @staticmethod
    def has_scroll_data(events: Iterable[BehaviorEvent]) -> bool:
        return any(e.scroll_events for e in events)

    def summarize(self, events: Iterable[BehaviorEvent]) -> SessionStatistics:
        """
        Compute every session statistic in one pass over sorted events

        Args:
            events: session behavior events in any order

        Returns:
            SessionStatistics: summary (identical for any input ordering)
        """
        ordered = self.sort_events(events)
        return SessionStatistics(
            event_count=len(ordered),
            intervals=self.interval_stats(self.intervals(ordered)),
            duration_seconds=self.duration_seconds(ordered),
            category_counts=Counter(e.category for e in ordered),
            unique_ip_count=self.distinct_count(e.ip_address for e in ordered),
            unique_user_agent_count=self.distinct_count(e.user_agent for e in ordered),
        )
