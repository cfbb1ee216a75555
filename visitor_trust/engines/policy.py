"""
Scoring policy and policy hooks

Every constant table the scorers use (weights, bot substrings, datacenter
prefixes, penalties, windows) lives in an immutable ScoringPolicy injected
at construction. Checks that have no baseline implementation are exposed
as ScoringHooks methods with a no-op default; subclass ScoringHooks to add
real detection without touching the scorers.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from ..config import Settings
from ..exceptions import PolicyConfigurationError

if TYPE_CHECKING:
    from ..models.schemas import BehaviorEvent, VisitorInput


# Sub-score capacity per component; must sum to 100
DEFAULT_WEIGHTS = {
    "ip": 20,
    "user_agent": 15,
    "request_pattern": 15,
    "fingerprint": 20,
    "behavior": 20,
    "source": 10,
}

SCORE_COMPONENTS = tuple(DEFAULT_WEIGHTS)

# Any of these in a User-Agent zeroes the client-header score
KNOWN_BOT_PATTERNS = (
    "bot",
    "crawler",
    "spider",
    "scraper",
    "curl",
    "wget",
    "python-requests",
    "java/",
    "go-http-client",
    "http_request",
    "axios",
    "okhttp",
    "httpclient",
)

# Literal string prefixes of common cloud/datacenter address space
DATACENTER_IP_PREFIXES = (
    "52.",
    "54.",
    "18.",
    "3.",
    "13.",
    "34.",
    "35.",
    "104.",
    "130.",
    "142.",
    "146.",
)

BROWSER_NAMES = ("chrome", "firefox", "safari", "edge", "opera")

# A real browser UA names at least one rendering engine marker
ENGINE_MARKERS = ("mozilla", "gecko", "webkit")

SEARCH_ENGINE_DOMAINS = (
    "google.com",
    "bing.com",
    "yahoo.com",
    "baidu.com",
    "duckduckgo.com",
)


@dataclass(frozen=True)
class Penalties:
    """Points subtracted from a sub-score when a condition holds"""

    # network origin
    datacenter_ip: int = 10
    known_proxy: int = 8
    high_ip_frequency: int = 5
    # client header
    missing_browser_signature: int = 8
    outdated_browser: int = 5
    suspicious_user_agent: int = 7
    # request cadence
    missing_session_cadence: int = 5
    burst_requests: int = 10
    regular_intervals: int = 8
    lacks_typical_behavior: int = 5
    # fingerprint
    missing_fingerprint: int = 10
    inconsistent_fingerprint: int = 12
    common_bot_fingerprint: int = 15
    suspicious_fingerprint: int = 8
    # behavior
    missing_session_behavior: int = 10
    no_behavior_events: int = 15
    no_mouse_movement: int = 10
    no_clicks: int = 8
    no_scrolls: int = 7
    robotic_behavior: int = 12
    # referral source
    missing_referer: int = 3
    invalid_search_referer: int = 8
    suspicious_referer: int = 5


def _default_weights() -> Mapping[str, int]:
    return MappingProxyType(dict(DEFAULT_WEIGHTS))


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Immutable scoring configuration

    Raises:
        PolicyConfigurationError: weights do not cover exactly the six
            components, are not positive, or do not sum to 100
    """

    weights: Mapping[str, int] = field(default_factory=_default_weights)
    bot_patterns: tuple[str, ...] = KNOWN_BOT_PATTERNS
    datacenter_prefixes: tuple[str, ...] = DATACENTER_IP_PREFIXES
    browser_names: tuple[str, ...] = BROWSER_NAMES
    engine_markers: tuple[str, ...] = ENGINE_MARKERS
    search_engine_domains: tuple[str, ...] = SEARCH_ENGINE_DOMAINS
    min_chrome_version: int = 90
    min_user_agent_length: int = 20
    ip_frequency_window: timedelta = timedelta(minutes=5)
    ip_frequency_threshold: int = 50
    burst_event_threshold: int = 10
    burst_window_seconds: float = 5.0
    penalties: Penalties = field(default_factory=Penalties)

    def __post_init__(self):
        if set(self.weights) != set(SCORE_COMPONENTS):
            raise PolicyConfigurationError(
                f"Weights must cover exactly {list(SCORE_COMPONENTS)}, got {sorted(self.weights)}"
            )
        if any(w <= 0 for w in self.weights.values()):
            raise PolicyConfigurationError("Weights must be positive")
        total = sum(self.weights.values())
        if total != 100:
            raise PolicyConfigurationError(f"Weights must sum to 100, got {total}")

        # Freeze and normalize so substring checks can run on lower-cased input
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        for name in ("bot_patterns", "browser_names", "engine_markers", "search_engine_domains"):
            object.__setattr__(
                self, name, tuple(v.lower() for v in getattr(self, name))
            )
        object.__setattr__(self, "datacenter_prefixes", tuple(self.datacenter_prefixes))

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "ScoringPolicy":
        """Default policy with the frequency window/threshold taken from settings"""
        params = {
            "ip_frequency_window": timedelta(seconds=settings.IP_FREQUENCY_WINDOW_SECONDS),
            "ip_frequency_threshold": settings.IP_FREQUENCY_THRESHOLD,
        }
        params.update(overrides)
        return cls(**params)

    def weight(self, component: str) -> int:
        return self.weights[component]

    def clamp(self, component: str, score: int) -> int:
        """Bound a raw sub-score to [0, weight]"""
        return max(0, min(self.weights[component], int(score)))


class ScoringHooks:
    """
    Extension points for checks without a baseline implementation

    Each default answers "no concern". Hooks are async so overrides can
    query their own data sources. A SignalStoreError, OSError (connection
    refused, reset) or timeout raised from a hook is absorbed like a store
    failure in that scorer; any other exception fails the classification.
    """

    async def is_known_proxy(self, ip: str) -> bool:
        return False

    async def has_regular_intervals(self, session_id: str) -> bool:
        return False

    async def lacks_typical_behavior(self, session_id: str) -> bool:
        return False

    async def is_fingerprint_consistent(self, visitor: "VisitorInput") -> bool:
        return True

    async def is_common_bot_fingerprint(self, fingerprint_hash: str) -> bool:
        return False

    async def has_suspicious_fingerprint(self, visitor: "VisitorInput") -> bool:
        return False

    async def has_robotic_behavior(self, events: list["BehaviorEvent"]) -> bool:
        return False

    async def is_valid_search_referer(self, visitor: "VisitorInput") -> bool:
        return True

    async def is_suspicious_referer(self, referer: str) -> bool:
        return False

