"""
Scoring engines: signal scorers, confidence, classification, session analysis
"""

from .behavior_statistics import BehaviorStatistics, IntervalStats, SessionStatistics
from .classifier import UserTypeClassifier
from .confidence import ConfidenceEstimator
from .policy import (
    DEFAULT_WEIGHTS,
    SCORE_COMPONENTS,
    Penalties,
    ScoringHooks,
    ScoringPolicy,
)
from .session_analyzer import SessionAnalyzer
from .signal_scorers import SignalScorers
from .trust_engine import VisitorTrustEngine

__all__ = [
    "BehaviorStatistics",
    "ConfidenceEstimator",
    "DEFAULT_WEIGHTS",
    "IntervalStats",
    "Penalties",
    "SCORE_COMPONENTS",
    "ScoringHooks",
    "ScoringPolicy",
    "SessionAnalyzer",
    "SessionStatistics",
    "SignalScorers",
    "UserTypeClassifier",
    "VisitorTrustEngine",
]
