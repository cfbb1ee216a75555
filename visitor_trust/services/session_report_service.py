"""
Session Report Service

Bulk retrospective analysis of every stored session:
- analyze_all_sessions: run the session analyzer over each session
- get_detection_results: filter by verdict, paginate, count per verdict
- save_detection_result: persist one analysis
"""

import logging
import math
from typing import Optional

from ..db.signal_store import SignalStore, Stream
from ..engines.session_analyzer import SessionAnalyzer
from ..models.schemas import SessionAnalysis, SessionReport, SessionStats, SessionVerdict

logger = logging.getLogger(__name__)


class SessionReportService:
    """Session analysis reporting over the signal store"""

    ALL = "all"

    def __init__(self, store: SignalStore, analyzer: Optional[SessionAnalyzer] = None):
        self.store = store
        self.analyzer = analyzer or SessionAnalyzer()

    async def analyze_all_sessions(self) -> list[SessionAnalysis]:
        """
        Analyze every session that has behavior events

        Returns:
            list[SessionAnalysis]: newest analysis first
        """
        results = []
        for session_id in await self.store.list_session_ids():
            events = await self.store.fetch_behavior_events_by_session(session_id)
            results.append(self.analyzer.analyze_session_batch(session_id, events))

        results.sort(key=lambda r: r.analyzed_at, reverse=True)
        logger.info(f"Analyzed {len(results)} sessions")
        return results

    async def get_detection_results(
        self, page: int = 1, per_page: int = 10, filter_type: str = ALL
    ) -> SessionReport:
        """
        One page of session analyses

        Args:
            page: 1-based page number
            per_page: items per page
            filter_type: "all" or a verdict (human, ai, bot, unknown)

        Returns:
            SessionReport: page items plus verdict counts over the filtered set

        Raises:
            ValueError: page/per_page below 1 or unknown filter_type
        """
        if page < 1 or per_page < 1:
            raise ValueError("page and per_page must be at least 1")

        results = await self.analyze_all_sessions()

        if filter_type != self.ALL:
            verdict = SessionVerdict(filter_type)
            results = [r for r in results if r.result == verdict]

        total = len(results)
        offset = (page - 1) * per_page

        stats = SessionStats(
            total=total,
            human=sum(1 for r in results if r.result == SessionVerdict.HUMAN),
            ai=sum(1 for r in results if r.result == SessionVerdict.AI),
            bot=sum(1 for r in results if r.result == SessionVerdict.BOT),
        )

        return SessionReport(
            data=results[offset : offset + per_page],
            stats=stats,
            page=page,
            per_page=per_page,
            total=total,
            total_pages=math.ceil(total / per_page),
        )

    async def save_detection_result(self, analysis: SessionAnalysis) -> str:
        """Persist one session analysis and return its record id"""
        record = analysis.model_dump()
        record["result"] = analysis.result.value
        return await self.store.append_record(Stream.SESSION_ANALYSES, record)
