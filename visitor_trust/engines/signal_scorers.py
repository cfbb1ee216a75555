"""
Signal scorers - six weighted sub-scores of the visitor trust score

Each scorer starts from its weight, subtracts penalties for suspicious
findings and is clamped to [0, weight]:
- ip (20): allow/deny lists, datacenter ranges, proxies, request volume
- user_agent (15): bot signatures, browser identity, outdated versions
- request_pattern (15): request bursts and cadence hooks
- fingerprint (20): fingerprint allowlist and consistency hooks
- behavior (20): mouse/click/scroll presence in recorded events
- source (10): referer presence and search-engine validity
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar
from urllib.parse import urlsplit

from ..db.signal_store import SignalStore
from ..exceptions import SignalStoreError
from ..models.schemas import AccessListType, ListKind, ScoreBreakdown, VisitorInput
from ..utils import utcnow
from ..utils.metrics import record_store_failure
from .behavior_statistics import BehaviorStatistics
from .policy import ScoringHooks, ScoringPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHROME_VERSION_PATTERN = re.compile(r"chrome/(\d+)")

# Lookup failures a scorer replaces with its fallback value
LOOKUP_FAILURES = (SignalStoreError, OSError, asyncio.TimeoutError)


class SignalScorers:
    """
    Computes the six sub-scores for one visitor

    Store lookups and hooks are isolated per scorer: a SignalStoreError,
    connection error or timeout is logged, counted, and replaced by the "record not found" value so one failing
    query never affects the other sub-scores.
    """

    def __init__(
        self,
        store: SignalStore,
        policy: Optional[ScoringPolicy] = None,
        hooks: Optional[ScoringHooks] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: signal store for list lookups and history queries
            policy: scoring policy (defaults to ScoringPolicy())
            hooks: policy hooks (defaults to no-op ScoringHooks())
            clock: returns the current UTC time
        """
        self.store = store
        self.policy = policy or ScoringPolicy()
        self.hooks = hooks or ScoringHooks()
        self.clock = clock
        self.behavior_statistics = BehaviorStatistics()

    async def score_all(self, visitor: VisitorInput) -> ScoreBreakdown:
        """Run every scorer concurrently and assemble the breakdown"""
        ip, request_pattern, fingerprint, behavior, source = await asyncio.gather(
            self.score_ip(visitor),
            self.score_request_pattern(visitor),
            self.score_fingerprint(visitor),
            self.score_behavior(visitor),
            self.score_source(visitor),
        )
        return ScoreBreakdown(
            ip=ip,
            user_agent=self.score_user_agent(visitor),
            request_pattern=request_pattern,
            fingerprint=fingerprint,
            behavior=behavior,
            source=source,
        )

    # ------------------------------------------------------------------
    # Network origin
    # ------------------------------------------------------------------

    async def score_ip(self, visitor: VisitorInput) -> int:
        ip = visitor.ip
        if not ip:
            return 0

        weight = self.policy.weight("ip")
        penalties = self.policy.penalties
        now = self.clock()

        if await self._is_listed("ip", AccessListType.ALLOW, ListKind.IP, ip, now):
            return weight
        if await self._is_listed("ip", AccessListType.DENY, ListKind.IP, ip, now):
            return 0

        score = weight

        if self._is_datacenter_ip(ip):
            score -= penalties.datacenter_ip

        if await self._guard("ip", self.hooks.is_known_proxy(ip), False):
            score -= penalties.known_proxy

        since = now - self.policy.ip_frequency_window
        recent = await self._guard(
            "ip", self.store.count_recent_by_key("ip", ip, since), 0
        )
        if recent > self.policy.ip_frequency_threshold:
            score -= penalties.high_ip_frequency

        logger.debug(f"IP score {score} (recent={recent})", extra={"scorer": "ip"})
        return self.policy.clamp("ip", score)

    def _is_datacenter_ip(self, ip: str) -> bool:
        return ip.startswith(self.policy.datacenter_prefixes)

    # ------------------------------------------------------------------
    # Client header
    # ------------------------------------------------------------------

    def score_user_agent(self, visitor: VisitorInput) -> int:
        user_agent = visitor.user_agent.lower()
        if not user_agent:
            return 0

        if any(pattern in user_agent for pattern in self.policy.bot_patterns):
            return 0

        penalties = self.policy.penalties
        score = self.policy.weight("user_agent")

        if not any(name in user_agent for name in self.policy.browser_names):
            score -= penalties.missing_browser_signature

        match = CHROME_VERSION_PATTERN.search(user_agent)
        if match and int(match.group(1)) < self.policy.min_chrome_version:
            score -= penalties.outdated_browser

        if len(user_agent) < self.policy.min_user_agent_length or not any(
            marker in user_agent for marker in self.policy.engine_markers
        ):
            score -= penalties.suspicious_user_agent

        return self.policy.clamp("user_agent", score)

    # ------------------------------------------------------------------
    # Request cadence
    # ------------------------------------------------------------------

    async def score_request_pattern(self, visitor: VisitorInput) -> int:
        weight = self.policy.weight("request_pattern")
        penalties = self.policy.penalties
        session_id = visitor.session_id

        if not session_id:
            return self.policy.clamp(
                "request_pattern", weight - penalties.missing_session_cadence
            )

        score = weight

        count, first_ts = await self._guard(
            "request_pattern",
            self.store.count_and_first_timestamp_by_session(session_id),
            (0, None),
        )
        if count > self.policy.burst_event_threshold and first_ts is not None:
            elapsed = (self.clock() - first_ts).total_seconds()
            if elapsed < self.policy.burst_window_seconds:
                score -= penalties.burst_requests

        if await self._guard(
            "request_pattern", self.hooks.has_regular_intervals(session_id), False
        ):
            score -= penalties.regular_intervals

        if await self._guard(
            "request_pattern", self.hooks.lacks_typical_behavior(session_id), False
        ):
            score -= penalties.lacks_typical_behavior

        return self.policy.clamp("request_pattern", score)

    # ------------------------------------------------------------------
    # Device fingerprint
    # ------------------------------------------------------------------

    async def score_fingerprint(self, visitor: VisitorInput) -> int:
        weight = self.policy.weight("fingerprint")
        penalties = self.policy.penalties
        fingerprint_hash = visitor.fingerprint_hash

        if not fingerprint_hash:
            return self.policy.clamp(
                "fingerprint", weight - penalties.missing_fingerprint
            )

        if await self._is_listed(
            "fingerprint",
            AccessListType.ALLOW,
            ListKind.FINGERPRINT,
            fingerprint_hash,
            self.clock(),
        ):
            return weight

        score = weight

        if not await self._guard(
            "fingerprint", self.hooks.is_fingerprint_consistent(visitor), True
        ):
            score -= penalties.inconsistent_fingerprint

        if await self._guard(
            "fingerprint", self.hooks.is_common_bot_fingerprint(fingerprint_hash), False
        ):
            score -= penalties.common_bot_fingerprint

        if await self._guard(
            "fingerprint", self.hooks.has_suspicious_fingerprint(visitor), False
        ):
            score -= penalties.suspicious_fingerprint

        return self.policy.clamp("fingerprint", score)

    # ------------------------------------------------------------------
    # Interaction behavior
    # ------------------------------------------------------------------

    async def score_behavior(self, visitor: VisitorInput) -> int:
        weight = self.policy.weight("behavior")
        penalties = self.policy.penalties
        session_id = visitor.session_id

        if not session_id:
            return self.policy.clamp(
                "behavior", weight - penalties.missing_session_behavior
            )

        events = await self._guard(
            "behavior", self.store.fetch_behavior_events_by_session(session_id), []
        )
        if not events:
            return self.policy.clamp("behavior", weight - penalties.no_behavior_events)

        score = weight
        stats = self.behavior_statistics

        if not stats.has_mouse_data(events):
            score -= penalties.no_mouse_movement
        if not stats.has_click_data(events):
            score -= penalties.no_clicks
        if not stats.has_scroll_data(events):
            score -= penalties.no_scrolls

        if await self._guard("behavior", self.hooks.has_robotic_behavior(events), False):
            score -= penalties.robotic_behavior

        return self.policy.clamp("behavior", score)

    # ------------------------------------------------------------------
    # Referral source
    # ------------------------------------------------------------------

    async def score_source(self, visitor: VisitorInput) -> int:
        penalties = self.policy.penalties
        referer = visitor.referer
        score = self.policy.weight("source")

        if not referer:
            score -= penalties.missing_referer
        elif self._is_search_engine_referer(referer):
            if not await self._guard(
                "source", self.hooks.is_valid_search_referer(visitor), True
            ):
                score -= penalties.invalid_search_referer
        elif await self._guard(
            "source", self.hooks.is_suspicious_referer(referer), False
        ):
            score -= penalties.suspicious_referer

        return self.policy.clamp("source", score)

    def _is_search_engine_referer(self, referer: str) -> bool:
        """Referer host equals a search-engine domain or is a subdomain of one"""
        try:
            parsed = urlsplit(referer if "//" in referer else f"//{referer}")
            host = (parsed.hostname or "").lower()
        except ValueError:
            return False

        return any(
            host == domain or host.endswith(f".{domain}")
            for domain in self.policy.search_engine_domains
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _is_listed(
        self,
        scorer: str,
        list_type: AccessListType,
        kind: ListKind,
        value: str,
        now: datetime,
    ) -> bool:
        match = await self._guard(
            scorer, self.store.lookup_access_list(list_type, kind, value), None
        )
        return match is not None and match.is_active(now)

    async def _guard(self, scorer: str, lookup: Awaitable[T], fallback: T) -> T:
        """Await a store lookup or hook, substituting fallback on lookup failure"""
        try:
            return await lookup
        except LOOKUP_FAILURES as e:
            operation = e.details.get("operation") if isinstance(e, SignalStoreError) else None
            logger.warning(
                f"Lookup failed in {scorer} scorer, using fallback: {type(e).__name__}: {e}",
                extra={"scorer": scorer, "operation": operation},
            )
            record_store_failure(scorer)
            return fallback
