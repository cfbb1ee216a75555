"""
Visitor trust engine - weighted multi-factor visitor classification

Flow:
1. Validate the visitor input
2. Run the six signal scorers concurrently
3. Sum the sub-scores into the 0-100 total
4. Estimate confidence
5. Classify user type, risk level and flags
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from ..db.signal_store import SignalStore
from ..models.schemas import ClassificationResult, VisitorInput
from ..utils import utcnow
from ..utils.metrics import record_classification
from .classifier import UserTypeClassifier
from .confidence import ConfidenceEstimator
from .policy import ScoringHooks, ScoringPolicy
from .signal_scorers import SignalScorers

logger = logging.getLogger(__name__)


class VisitorTrustEngine:
    """
    Visitor trust engine

    Holds no per-visitor state; one instance can classify concurrent
    requests. Store failures degrade individual sub-scores, only invalid
    input raises.
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
            store: signal store used by the scorers
            policy: scoring policy (defaults to ScoringPolicy())
            hooks: policy hooks (defaults to no-op ScoringHooks())
            clock: returns the current UTC time
        """
        self.policy = policy or ScoringPolicy()
        self.clock = clock
        self.scorers = SignalScorers(store, self.policy, hooks, clock)
        self.confidence_estimator = ConfidenceEstimator(self.policy)
        self.classifier = UserTypeClassifier()

    async def classify_visitor(self, visitor: Any) -> ClassificationResult:
        """
        Classify one visitor

        Args:
            visitor: VisitorInput or a mapping of visitor fields

        Returns:
            ClassificationResult: score breakdown and classification

        Raises:
            VisitorInputError: a field holds a non-string value
        """
        visitor = VisitorInput.parse(visitor)
        start_time = time.perf_counter()

        breakdown = await self.scorers.score_all(visitor)
        total_score = breakdown.total
        confidence = self.confidence_estimator.estimate(breakdown, visitor)

        result = ClassificationResult(
            total_score=total_score,
            breakdown=breakdown,
            confidence=confidence,
            user_type=self.classifier.determine_user_type(total_score, confidence),
            risk_level=self.classifier.determine_risk_level(total_score),
            flags=self.classifier.detection_flags(breakdown),
            timestamp=self.clock(),
        )

        duration = time.perf_counter() - start_time
        record_classification(result.user_type.value, result.risk_level.value, duration)

        logger.info(
            f"Visitor classified: {result.user_type.value} "
            f"(score={total_score}, confidence={confidence})",
            extra={
                "session_id": visitor.session_id,
                "user_type": result.user_type.value,
                "risk_level": result.risk_level.value,
                "total_score": total_score,
                "confidence": confidence,
            },
        )
        return result
