import logging

from ..models import PoseFrame
from ..utils.constants import SuppressionReasons

logger = logging.getLogger(__name__)


class FalsePositiveFilter:
    """
    Recognizes movement patterns that look like falls but are not.

    Checked before scoring, in order:
    1. Low confidence: pose detector is unsure about the frame
    2. Sitting: slow, steady descent that ends at mid height
    3. Exercise: repeated up/down movement (squats, burpees)
    4. Camera movement: confidence collapses across consecutive frames

    Thresholds are empirically tuned and kept as constructor arguments.
    """

    def __init__(
        self,
        min_pose_confidence: float = 0.3,
        sitting_window: int = 60,
        sitting_min_slow_samples: int = 30,
        sitting_max_velocity: float = 0.1,
        sitting_min_center_y: float = 0.4,
        sitting_max_center_y: float = 0.7,
        exercise_window: int = 90,
        exercise_min_reversals: int = 6,
        exercise_amplitude: float = 0.05,
        camera_window: int = 5,
        camera_confidence_drop: float = 0.3,
        nominal_frame_interval: float = 1 / 30,
    ):
        """
        Initialize filter.

        Args:
            min_pose_confidence: Frames below this overall confidence are ignored
            sitting_window: Frames inspected for the sitting pattern (~2s)
            sitting_min_slow_samples: Slow-descent samples needed for sitting
            sitting_max_velocity: Upper bound of a slow descent (units/s)
            sitting_min_center_y: Lower bound of the seated center height
            sitting_max_center_y: Upper bound of the seated center height
            exercise_window: Frames inspected for the exercise pattern (~3s)
            exercise_min_reversals: Direction reversals needed for exercise
            exercise_amplitude: Minimum swing counted as a reversal
            camera_window: Frames inspected for camera movement
            camera_confidence_drop: Mean per-frame confidence drop for camera movement
            nominal_frame_interval: Interval assumed when two frames share a timestamp
        """
        self.min_pose_confidence = min_pose_confidence
        self.sitting_window = sitting_window
        self.sitting_min_slow_samples = sitting_min_slow_samples
        self.sitting_max_velocity = sitting_max_velocity
        self.sitting_min_center_y = sitting_min_center_y
        self.sitting_max_center_y = sitting_max_center_y
        self.exercise_window = exercise_window
        self.exercise_min_reversals = exercise_min_reversals
        self.exercise_amplitude = exercise_amplitude
        self.camera_window = camera_window
        self.camera_confidence_drop = camera_confidence_drop
        self.nominal_frame_interval = nominal_frame_interval

    def check(self, frame: PoseFrame, window: list[PoseFrame]) -> str | None:
        """
        Run all false-positive checks.

        Args:
            frame: Frame being evaluated (window[0])
            window: Recent frames, most recent first

        Returns:
            Suppression reason, or None if the frame may be scored
        """
        if self.is_low_confidence(frame):
            reason = SuppressionReasons.LOW_CONFIDENCE
        elif self.is_sitting(frame, window):
            reason = SuppressionReasons.SITTING
        elif self.is_exercising(window):
            reason = SuppressionReasons.EXERCISE
        elif self.is_camera_moving(window):
            reason = SuppressionReasons.CAMERA_MOVEMENT
        else:
            return None

        logger.debug(
            f"Suppressed as false positive ({reason}): "
            f"user={frame.user_id} timestamp={frame.timestamp:.3f}"
        )
        return reason

    def is_low_confidence(self, frame: PoseFrame) -> bool:
        confidence = frame.overall_confidence
        return confidence is None or confidence < self.min_pose_confidence

    def is_sitting(self, frame: PoseFrame, window: list[PoseFrame]) -> bool:
        """Slow descent over ~2s ending at mid height."""
        if len(window) < self.sitting_window or frame.center_y is None:
            return False

        slow_descent = 0
        for newer, older in zip(
            window[: self.sitting_window], window[1 : self.sitting_window + 1]
        ):
            if newer.center_y is None or older.center_y is None:
                continue
            delta_t = newer.timestamp - older.timestamp
            if delta_t <= 0:
                delta_t = self.nominal_frame_interval
            velocity = (newer.center_y - older.center_y) / delta_t
            if 0 < velocity < self.sitting_max_velocity:
                slow_descent += 1

        return (
            slow_descent >= self.sitting_min_slow_samples
            and self.sitting_min_center_y < frame.center_y < self.sitting_max_center_y
        )

    def count_reversals(self, heights: list[float]) -> int:
        """
        Count direction changes of a height trace.

        A movement counts once it has travelled at least exercise_amplitude
        from the last turning point in the new direction. The first movement
        out of rest counts as well.

        Args:
            heights: center_y values in time order

        Returns:
            Number of swings
        """
        if len(heights) < 2:
            return 0

        reversals = 0
        direction = 0  # +1 moving down the image, -1 moving up
        low = high = extreme = heights[0]

        for y in heights[1:]:
            if direction == 0:
                low, high = min(low, y), max(high, y)
                if y - low >= self.exercise_amplitude:
                    direction, extreme = 1, y
                    reversals += 1
                elif high - y >= self.exercise_amplitude:
                    direction, extreme = -1, y
                    reversals += 1
            elif direction == 1:
                if y > extreme:
                    extreme = y
                elif extreme - y >= self.exercise_amplitude:
                    direction, extreme = -1, y
                    reversals += 1
            else:
                if y < extreme:
                    extreme = y
                elif y - extreme >= self.exercise_amplitude:
                    direction, extreme = 1, y
                    reversals += 1

        return reversals

    def is_exercising(self, window: list[PoseFrame]) -> bool:
        """Repeated up/down movement over ~3s."""
        if len(window) < self.exercise_window:
            return False

        heights = [
            f.center_y for f in reversed(window[: self.exercise_window]) if f.center_y is not None
        ]
        return self.count_reversals(heights) >= self.exercise_min_reversals

    def is_camera_moving(self, window: list[PoseFrame]) -> bool:
        """
        Overall confidence collapsing on the latest frame.

        Averages the drop from each of the previous camera_window frames to
        the current one; consecutive-pair drops would cancel out.
        """
        if len(window) < self.camera_window:
            return False

        pairs = min(self.camera_window, len(window) - 1)
        current = window[0].overall_confidence or 0.0
        total_drop = sum(
            (older.overall_confidence or 0.0) - current for older in window[1 : pairs + 1]
        )

        return total_drop / pairs > self.camera_confidence_drop
