import logging

from ..exceptions import MalformedLandmarksError
from ..models import FallDetectionResult, PoseFrame, Severity
from ..utils.constants import (
    DEFAULT_FALSE_POSITIVE_CONFIG,
    DEFAULT_FEATURE_CONFIG,
    DEFAULT_SCORER_CONFIG,
    SuppressionReasons,
)
from .features import FeatureExtractor
from .filters import FalsePositiveFilter
from .scorer import ConfidenceScorer

logger = logging.getLogger(__name__)


class FallDetectorRuleBased:
    """
    Rule-based fall detection over a window of pose frames.

    Pipeline per evaluated frame:
    1. Feature extraction: velocity, horizontal pose, motion score, body angle
    2. False-positive filter: sitting, exercise, camera movement, low confidence
    3. Confidence scoring: weighted sum of fall signals and severity tier

    The detector is stateless; all history comes from the window passed in,
    so one instance can serve every user stream.
    """

    def __init__(
        self,
        min_history_frames: int = 30,
        feature_config: dict | None = None,
        filter_config: dict | None = None,
        scorer_config: dict | None = None,
    ):
        """
        Initialize fall detector.

        Args:
            min_history_frames: Buffered frames needed before evaluating (~1s)
            feature_config: Overrides for FeatureExtractor arguments
            filter_config: Overrides for FalsePositiveFilter arguments
            scorer_config: Overrides for ConfidenceScorer arguments
        """
        self.min_history_frames = min_history_frames
        self.extractor = FeatureExtractor(
            **{**DEFAULT_FEATURE_CONFIG, **(feature_config or {})}
        )
        self.false_positive_filter = FalsePositiveFilter(
            **{**DEFAULT_FALSE_POSITIVE_CONFIG, **(filter_config or {})}
        )
        self.scorer = ConfidenceScorer(
            **{**DEFAULT_SCORER_CONFIG, **(scorer_config or {})}
        )

        logger.info("FallDetectorRuleBased initialized")
        logger.info(f"  Min history frames: {min_history_frames}")
        logger.info(f"  Min confidence score: {self.scorer.min_confidence_score}")
        logger.info(f"  Velocity threshold: {self.scorer.velocity_threshold}")

    def prepare_frame(self, frame: PoseFrame) -> PoseFrame:
        """
        Compute center_y at ingestion so later frames can use it as history.

        A frame with malformed landmarks keeps center_y = None and is still
        buffered.
        """
        if frame.center_y is None:
            try:
                frame.center_y = self.extractor.center_y(frame.landmarks)
            except MalformedLandmarksError as e:
                logger.warning(
                    f"Malformed landmarks for user {frame.user_id} "
                    f"frame {frame.frame_number}: {e}"
                )
        return frame

    def detect_fall(self, frame: PoseFrame, window: list[PoseFrame]) -> FallDetectionResult:
        """
        Evaluate one frame against its recent history.

        Args:
            frame: Frame to evaluate
            window: Recent frames, most recent first, frame included at index 0

        Returns:
            FallDetectionResult; reason explains why nothing was detected
        """
        if len(window) < self.min_history_frames:
            return FallDetectionResult.no_determination(
                SuppressionReasons.INSUFFICIENT_HISTORY
            )

        try:
            features = self.extractor.extract(frame, window)
        except MalformedLandmarksError as e:
            logger.warning(
                f"Skipping fall check for user {frame.user_id} "
                f"frame {frame.frame_number}: {e}"
            )
            return FallDetectionResult.no_determination(
                SuppressionReasons.MALFORMED_LANDMARKS
            )

        reason = self.false_positive_filter.check(frame, window)
        if reason is not None:
            return FallDetectionResult(
                detected=False,
                confidence=0.0,
                severity=Severity.LOW,
                body_angle=features.body_angle,
                reason=reason,
                features=features,
            )

        result = self.scorer.score(features, frame.overall_confidence)

        logger.debug(
            f"Fall analysis user={frame.user_id}: detected={result.detected}, "
            f"confidence={result.confidence:.2f}, severity={result.severity.value}, "
            f"velocity={features.velocity_y:.3f}, horizontal={features.is_horizontal}, "
            f"motion={features.motion_score:.4f}"
        )
        return result

    def process_sequence(self, frames: list[PoseFrame]) -> list[FallDetectionResult]:
        """
        Evaluate every frame of an ordered sequence.

        Used for offline analysis; no retention or capacity limits apply.

        Args:
            frames: Frames of one stream in time order

        Returns:
            One result per frame
        """
        results = []
        history: list[PoseFrame] = []

        for frame in frames:
            self.prepare_frame(frame)
            history.insert(0, frame)
            results.append(self.detect_fall(frame, history))

        return results
