import logging

from ..models import FallDetectionResult, FrameFeatures, Severity
from ..utils.constants import ScoreWeights, SeverityThresholds, SuppressionReasons

logger = logging.getLogger(__name__)


def resolve_severity(
    confidence: float, no_motion: bool, floor: Severity = Severity.LOW
) -> Severity:
    """
    Map a confidence score to a severity tier.

    Args:
        confidence: Fall confidence in [0, 1]
        no_motion: Whether the person is motionless at a low position
        floor: Minimum tier forced by the motion rules

    Returns:
        The highest applicable severity
    """
    if confidence >= SeverityThresholds.CRITICAL or (
        confidence >= SeverityThresholds.CRITICAL_NO_MOTION and no_motion
    ):
        tier = Severity.CRITICAL
    elif confidence >= SeverityThresholds.HIGH:
        tier = Severity.HIGH
    elif confidence >= SeverityThresholds.MEDIUM:
        tier = Severity.MEDIUM
    else:
        tier = Severity.LOW

    return tier if tier.rank >= floor.rank else floor


class ConfidenceScorer:
    """
    Weighted-sum fall score over the frame features.

    Signals and weights:
    - rapid descent: +0.30, +0.15 more when 1.5x faster than the threshold
    - low position: +0.25
    - horizontal pose: +0.15, +0.15 more at a low position
    - motionless at a low position: +0.20 (severity at least HIGH)
    - barely moving at a low position: +0.10 (severity at least MEDIUM)
    - sudden body angle change: +0.10
    - height decrease -> rapid drop -> stop pattern: +0.10
    """

    def __init__(
        self,
        velocity_threshold: float = 0.15,
        fast_velocity_factor: float = 1.5,
        center_y_threshold: float = 0.7,
        no_motion_threshold: float = 0.01,
        little_motion_threshold: float = 0.05,
        angle_change_threshold: float = 60.0,
        pose_confidence_threshold: float = 0.5,
        min_confidence_score: float = 0.7,
    ):
        """
        Initialize scorer.

        Args:
            velocity_threshold: Downward velocity (units/s) counted as rapid descent
            fast_velocity_factor: Multiple of velocity_threshold for the extra weight
            center_y_threshold: Center height below which the body is low
            no_motion_threshold: Motion score under which the body is still
            little_motion_threshold: Motion score under which the body barely moves
            angle_change_threshold: Body angle change (degrees) counted as sudden
            pose_confidence_threshold: Minimum overall pose confidence to score
            min_confidence_score: Confidence needed to report a fall
        """
        self.velocity_threshold = velocity_threshold
        self.fast_velocity_threshold = velocity_threshold * fast_velocity_factor
        self.center_y_threshold = center_y_threshold
        self.no_motion_threshold = no_motion_threshold
        self.little_motion_threshold = little_motion_threshold
        self.angle_change_threshold = angle_change_threshold
        self.pose_confidence_threshold = pose_confidence_threshold
        self.min_confidence_score = min_confidence_score

    def score(
        self, features: FrameFeatures, overall_confidence: float | None
    ) -> FallDetectionResult:
        """
        Score one frame.

        Args:
            features: Features of the frame
            overall_confidence: Pose detector confidence for the frame

        Returns:
            FallDetectionResult with detected set when confidence reaches
            min_confidence_score
        """
        if overall_confidence is None or overall_confidence < self.pose_confidence_threshold:
            return FallDetectionResult(
                detected=False,
                confidence=0.0,
                severity=Severity.LOW,
                body_angle=features.body_angle,
                reason=SuppressionReasons.LOW_CONFIDENCE,
                features=features,
            )

        confidence = 0.0
        floor = Severity.LOW
        signals = []

        if features.velocity_y > self.velocity_threshold:
            confidence += ScoreWeights.RAPID_DESCENT
            signals.append("rapid_descent")
            if features.velocity_y > self.fast_velocity_threshold:
                confidence += ScoreWeights.VERY_RAPID_DESCENT

        low_position = features.center_y > self.center_y_threshold
        if low_position:
            confidence += ScoreWeights.LOW_POSITION
            signals.append("low_position")

        if features.is_horizontal:
            confidence += ScoreWeights.HORIZONTAL
            signals.append("horizontal")
            if low_position:
                confidence += ScoreWeights.HORIZONTAL_AT_LOW_POSITION

        no_motion = features.motion_score < self.no_motion_threshold
        little_motion = features.motion_score < self.little_motion_threshold
        if no_motion and low_position:
            confidence += ScoreWeights.NO_MOTION
            signals.append("no_motion")
            floor = Severity.HIGH
        elif little_motion and low_position:
            confidence += ScoreWeights.LITTLE_MOTION
            signals.append("little_motion")
            floor = Severity.MEDIUM

        if features.angle_change > self.angle_change_threshold:
            confidence += ScoreWeights.ANGLE_CHANGE
            signals.append("angle_change")

        if features.fall_pattern:
            confidence += ScoreWeights.FALL_PATTERN
            signals.append("fall_pattern")

        # Rounded so sums of weights land exactly on the severity breakpoints
        confidence = round(min(max(confidence, 0.0), 1.0), 6)
        severity = resolve_severity(confidence, no_motion, floor)
        detected = confidence >= self.min_confidence_score

        return FallDetectionResult(
            detected=detected,
            confidence=confidence,
            severity=severity,
            body_angle=features.body_angle,
            reason=None if detected else SuppressionReasons.BELOW_THRESHOLD,
            features=features,
            signals=tuple(signals),
        )
