"""
User type classifier

Maps the weighted total and confidence to a user type, the total alone to a
risk level, and low sub-scores to detection flags.
"""

from ..models.schemas import DetectionFlag, RiskLevel, ScoreBreakdown, UserType


class UserTypeClassifier:
    """
    Threshold-based classification

    User type (first match wins):
    - total >= 80 and confidence >= 0.7: human
    - total >= 60 and confidence >= 0.5: suspicious
    - total >= 40: suspicious
    - total >= 20: bot
    - otherwise: high_risk
    """

    HUMAN_MIN_SCORE = 80
    HUMAN_MIN_CONFIDENCE = 0.7
    CONFIDENT_SUSPICIOUS_MIN_SCORE = 60
    CONFIDENT_SUSPICIOUS_MIN_CONFIDENCE = 0.5
    SUSPICIOUS_MIN_SCORE = 40
    BOT_MIN_SCORE = 20

    # Risk level lower bounds
    LOW_RISK_MIN_SCORE = 80
    MEDIUM_RISK_MIN_SCORE = 60
    HIGH_RISK_MIN_SCORE = 40

    # (flag, sub-score, raised when below), in output order
    FLAG_THRESHOLDS = (
        (DetectionFlag.SUSPICIOUS_IP, "ip", 10),
        (DetectionFlag.SUSPICIOUS_USER_AGENT, "user_agent", 8),
        (DetectionFlag.SUSPICIOUS_FINGERPRINT, "fingerprint", 10),
        (DetectionFlag.NO_HUMAN_BEHAVIOR, "behavior", 10),
        (DetectionFlag.AUTOMATED_PATTERN, "request_pattern", 8),
    )

    def determine_user_type(self, total_score: int, confidence: float) -> UserType:
        if total_score >= self.HUMAN_MIN_SCORE and confidence >= self.HUMAN_MIN_CONFIDENCE:
            return UserType.HUMAN
        if (
            total_score >= self.CONFIDENT_SUSPICIOUS_MIN_SCORE
            and confidence >= self.CONFIDENT_SUSPICIOUS_MIN_CONFIDENCE
        ):
            return UserType.SUSPICIOUS
        if total_score >= self.SUSPICIOUS_MIN_SCORE:
            return UserType.SUSPICIOUS
        if total_score >= self.BOT_MIN_SCORE:
            return UserType.BOT
        return UserType.HIGH_RISK

    def determine_risk_level(self, total_score: int) -> RiskLevel:
        if total_score >= self.LOW_RISK_MIN_SCORE:
            return RiskLevel.LOW
        if total_score >= self.MEDIUM_RISK_MIN_SCORE:
            return RiskLevel.MEDIUM
        if total_score >= self.HIGH_RISK_MIN_SCORE:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL

    def detection_flags(self, breakdown: ScoreBreakdown) -> list[DetectionFlag]:
        return [
            flag
            for flag, component, below in self.FLAG_THRESHOLDS
            if getattr(breakdown, component) < below
        ]
