"""
Visitor Trust - multi-signal visitor trust scoring

Combines network origin, client headers, device fingerprint, interaction
behavior, request cadence and referral source into a 0-100 trust score and
a human / suspicious / bot / high_risk classification.
"""

from .engines import ScoringHooks, ScoringPolicy, SessionAnalyzer, VisitorTrustEngine
from .exceptions import (
    PolicyConfigurationError,
    SignalStoreError,
    TrustEngineError,
    VisitorInputError,
    VisitorNotFoundError,
)
from .models.schemas import (
    BehaviorEvent,
    ClassificationResult,
    SessionAnalysis,
    VisitorInput,
)

__version__ = "1.0.0"

__all__ = [
    "BehaviorEvent",
    "ClassificationResult",
    "PolicyConfigurationError",
    "ScoringHooks",
    "ScoringPolicy",
    "SessionAnalysis",
    "SessionAnalyzer",
    "SignalStoreError",
    "TrustEngineError",
    "VisitorInput",
    "VisitorInputError",
    "VisitorNotFoundError",
    "VisitorTrustEngine",
]
