import logging

import numpy as np

from ..exceptions import MalformedLandmarksError
from ..models import FrameFeatures, PoseFrame
from ..utils.constants import (
    LANDMARK_VISIBILITY,
    LANDMARK_X,
    LANDMARK_Y,
    NUM_LANDMARKS,
    PoseLandmarks,
)

logger = logging.getLogger(__name__)


def validate_landmarks(landmarks: np.ndarray) -> np.ndarray:
    """
    Check that a landmark array is a full, in-range skeleton.

    Args:
        landmarks: (33, 4) array of landmarks [x, y, z, visibility]

    Returns:
        The same array

    Raises:
        MalformedLandmarksError: Wrong shape, non-finite values, or x/y/visibility
            outside [0, 1]
    """
    if not isinstance(landmarks, np.ndarray) or landmarks.shape != (NUM_LANDMARKS, 4):
        shape = getattr(landmarks, "shape", None)
        raise MalformedLandmarksError(
            f"Expected ({NUM_LANDMARKS}, 4) landmarks, got {shape}"
        )

    if not np.all(np.isfinite(landmarks)):
        raise MalformedLandmarksError("Landmarks contain non-finite values")

    bounded = landmarks[:, [LANDMARK_X, LANDMARK_Y, LANDMARK_VISIBILITY]]
    if np.any(bounded < 0.0) or np.any(bounded > 1.0):
        raise MalformedLandmarksError("Landmark coordinates outside [0, 1]")

    return landmarks


class FeatureExtractor:
    """
    Derives kinematic features for a frame from its recent history.

    All methods that take a `window` expect frames ordered most recent first,
    with the frame being evaluated at index 0.

    Landmark indices (MediaPipe Pose):
    - 0: nose
    - 11, 12: left/right shoulder
    - 23, 24: left/right hip
    - 27, 28: left/right ankle
    """

    def __init__(
        self,
        horizontal_threshold: float = 0.3,
        torso_ratio: float = 0.7,
        min_visibility: float = 0.5,
        motion_window: int = 30,
        angle_lookback: int = 30,
        min_stable_frames: int = 10,
        pattern_window: int = 15,
        pattern_decrease_delta: float = 0.02,
        pattern_drop_delta: float = 0.05,
        still_threshold: float = 0.01,
    ):
        """
        Initialize feature extractor.

        Args:
            horizontal_threshold: Max nose-to-ankle height for a horizontal pose
            torso_ratio: Fraction of horizontal_threshold used for the torso check
            min_visibility: Minimum landmark visibility for the horizontal check
            motion_window: Frames averaged for the motion score
            angle_lookback: How many frames back the reference angle is taken
            min_stable_frames: Minimum window size for angle change
            pattern_window: Frames inspected for the fall pattern
            pattern_decrease_delta: Per-frame drop counted as a height decrease
            pattern_drop_delta: Per-frame drop counted as a rapid drop
            still_threshold: Motion score under which the body is stopped
        """
        self.horizontal_threshold = horizontal_threshold
        self.torso_threshold = horizontal_threshold * torso_ratio
        self.min_visibility = min_visibility
        self.motion_window = motion_window
        self.angle_lookback = angle_lookback
        self.min_stable_frames = min_stable_frames
        self.pattern_window = pattern_window
        self.pattern_decrease_delta = pattern_decrease_delta
        self.pattern_drop_delta = pattern_drop_delta
        self.still_threshold = still_threshold

    def _get_midpoint(self, landmarks: np.ndarray, idx1: int, idx2: int) -> np.ndarray:
        """
        Calculate midpoint between two landmarks.

        Returns:
            Midpoint coordinates [x, y, z]
        """
        return (landmarks[idx1, :3] + landmarks[idx2, :3]) / 2.0

    def center_y(self, landmarks: np.ndarray) -> float:
        """
        Body center height: Y of the hip midpoint (larger is lower in the image).

        Raises:
            MalformedLandmarksError: If the landmarks are not a valid skeleton
        """
        validate_landmarks(landmarks)
        hip_mid = self._get_midpoint(
            landmarks, PoseLandmarks.LEFT_HIP, PoseLandmarks.RIGHT_HIP
        )
        return float(hip_mid[LANDMARK_Y])

    def velocity_y(self, current: PoseFrame, previous: PoseFrame | None) -> float:
        """
        Vertical velocity of the body center in normalized units per second.

        Positive means moving down. Zero without a usable previous frame or
        when the timestamps do not advance.
        """
        if previous is None or current.center_y is None or previous.center_y is None:
            return 0.0

        delta_t = current.timestamp - previous.timestamp
        if delta_t <= 0:
            return 0.0

        return (current.center_y - previous.center_y) / delta_t

    def is_horizontal(self, landmarks: np.ndarray) -> bool:
        """
        Check if the person is lying down.

        Horizontal when head and feet are at similar height, or when shoulders
        and hips are. Indeterminate (False) if nose, ankles or shoulders are
        poorly visible.
        """
        visibility = landmarks[
            [
                PoseLandmarks.NOSE,
                PoseLandmarks.LEFT_ANKLE,
                PoseLandmarks.RIGHT_ANKLE,
                PoseLandmarks.LEFT_SHOULDER,
                PoseLandmarks.RIGHT_SHOULDER,
            ],
            LANDMARK_VISIBILITY,
        ]
        if float(np.min(visibility)) < self.min_visibility:
            return False

        ankle_mid = self._get_midpoint(
            landmarks, PoseLandmarks.LEFT_ANKLE, PoseLandmarks.RIGHT_ANKLE
        )
        shoulder_mid = self._get_midpoint(
            landmarks, PoseLandmarks.LEFT_SHOULDER, PoseLandmarks.RIGHT_SHOULDER
        )
        hip_mid = self._get_midpoint(
            landmarks, PoseLandmarks.LEFT_HIP, PoseLandmarks.RIGHT_HIP
        )

        height_diff = abs(landmarks[PoseLandmarks.NOSE, LANDMARK_Y] - ankle_mid[LANDMARK_Y])
        torso_diff = abs(shoulder_mid[LANDMARK_Y] - hip_mid[LANDMARK_Y])

        return bool(
            height_diff < self.horizontal_threshold or torso_diff < self.torso_threshold
        )

    def motion_score(self, window: list[PoseFrame]) -> float:
        """
        Mean absolute frame-to-frame change of center_y over the motion window.

        Lower is more static. Returns 1.0 with fewer than two frames.
        """
        if len(window) < 2:
            return 1.0

        deltas = [
            abs(newer.center_y - older.center_y)
            for newer, older in zip(
                window[: self.motion_window - 1], window[1 : self.motion_window]
            )
            if newer.center_y is not None and older.center_y is not None
        ]
        return float(np.mean(deltas)) if deltas else 0.0

    def body_angle(self, landmarks: np.ndarray) -> float:
        """
        Angle of the shoulder-to-hip line in degrees.

        About 90 when upright, about 0 or 180 when lying down.
        """
        shoulder_mid = self._get_midpoint(
            landmarks, PoseLandmarks.LEFT_SHOULDER, PoseLandmarks.RIGHT_SHOULDER
        )
        hip_mid = self._get_midpoint(
            landmarks, PoseLandmarks.LEFT_HIP, PoseLandmarks.RIGHT_HIP
        )
        delta = hip_mid - shoulder_mid
        return float(np.degrees(np.arctan2(delta[LANDMARK_Y], delta[LANDMARK_X])))

    def angle_change(self, window: list[PoseFrame]) -> float:
        """
        Change of body angle against the frame ~1s earlier.

        Returns 0.0 when the window is too short or the reference frame is
        not a valid skeleton.
        """
        if len(window) < self.min_stable_frames:
            return 0.0

        reference = window[min(self.angle_lookback, len(window) - 1)]
        try:
            reference_angle = self.body_angle(validate_landmarks(reference.landmarks))
        except MalformedLandmarksError:
            return 0.0

        return abs(self.body_angle(window[0].landmarks) - reference_angle)

    def matches_fall_pattern(self, window: list[PoseFrame], motion_score: float | None) -> bool:
        """
        Check for the height decrease -> rapid drop -> stop sequence.

        Args:
            window: Recent frames, most recent first
            motion_score: Motion score of the current frame, if computed

        Returns:
            True if the last pattern_window frames show a fall followed by stillness
        """
        if len(window) < self.pattern_window:
            return False

        height_decrease = False
        rapid_drop = False
        for newer, older in zip(
            window[: self.pattern_window], window[1 : self.pattern_window + 1]
        ):
            if newer.center_y is None or older.center_y is None:
                continue
            delta_y = newer.center_y - older.center_y
            if delta_y > self.pattern_decrease_delta:
                height_decrease = True
            if delta_y > self.pattern_drop_delta:
                rapid_drop = True

        if motion_score is not None:
            stopped = motion_score < self.still_threshold
        elif window[0].center_y is not None and window[1].center_y is not None:
            stopped = abs(window[0].center_y - window[1].center_y) < self.still_threshold
        else:
            stopped = False

        return height_decrease and rapid_drop and stopped

    def extract(self, frame: PoseFrame, window: list[PoseFrame]) -> FrameFeatures:
        """
        Compute all features for a frame and record them on it.

        Args:
            frame: Frame being evaluated (window[0])
            window: Recent frames, most recent first

        Returns:
            FrameFeatures for the frame

        Raises:
            MalformedLandmarksError: If the frame's landmarks are invalid
        """
        landmarks = validate_landmarks(frame.landmarks)
        if frame.center_y is None:
            frame.center_y = self.center_y(landmarks)

        previous = window[1] if len(window) > 1 else None
        velocity_y = self.velocity_y(frame, previous)
        is_horizontal = self.is_horizontal(landmarks)
        motion_score = self.motion_score(window)

        frame.velocity_y = velocity_y
        frame.is_horizontal = is_horizontal
        frame.motion_score = motion_score

        features = FrameFeatures(
            center_y=frame.center_y,
            velocity_y=velocity_y,
            is_horizontal=is_horizontal,
            motion_score=motion_score,
            body_angle=self.body_angle(landmarks),
            angle_change=self.angle_change(window),
            fall_pattern=self.matches_fall_pattern(window, motion_score),
        )

        logger.debug(
            f"Features user={frame.user_id} frame={frame.frame_number}: "
            f"center={features.center_y:.3f} velocity={velocity_y:.3f} "
            f"horizontal={is_horizontal} motion={motion_score:.4f} "
            f"angle={features.body_angle:.1f} change={features.angle_change:.1f}"
        )
        return features
