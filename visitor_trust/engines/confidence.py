"""
Confidence estimator

confidence = data completeness x sub-score consistency, rounded to two
decimals. Completeness rewards each signal the visitor actually supplied;
consistency drops when the sub-scores disagree with each other.
"""

import statistics

from ..models.schemas import ScoreBreakdown, VisitorInput
from .policy import SCORE_COMPONENTS, ScoringPolicy


class ConfidenceEstimator:
    """Data completeness times agreement across normalized sub-scores"""

    # Completeness contribution per supplied field
    COMPLETENESS_WEIGHTS = (
        ("fingerprint_hash", 0.3),
        ("session_id", 0.3),
        ("ip", 0.2),
        ("user_agent", 0.2),
    )

    def __init__(self, policy: ScoringPolicy):
        self.policy = policy

    def data_completeness(self, visitor: VisitorInput) -> float:
        completeness = sum(
            weight for field, weight in self.COMPLETENESS_WEIGHTS if getattr(visitor, field)
        )
        return min(1.0, completeness)

    def consistency(self, breakdown: ScoreBreakdown) -> float:
        """1 - population stddev of sub-scores expressed as % of their weight"""
        normalized = [
            getattr(breakdown, component) / self.policy.weight(component) * 100
            for component in SCORE_COMPONENTS
        ]
        return 1 - statistics.pstdev(normalized) / 100

    def estimate(self, breakdown: ScoreBreakdown, visitor: VisitorInput) -> float:
        """
        Estimate classification confidence

        Args:
            breakdown: the six sub-scores
            visitor: input the sub-scores were computed from

        Returns:
            float: confidence in [0, 1] with two decimals
        """
        confidence = self.data_completeness(visitor) * self.consistency(breakdown)
        return round(max(0.0, min(1.0, confidence)), 2)
