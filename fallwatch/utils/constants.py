"""
Constants and default thresholds for the fall detection engine.
"""


# MediaPipe Pose Landmark Indices
class PoseLandmarks:
    """MediaPipe Pose landmark indices."""

    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = 33

# Columns of a landmark row
LANDMARK_X = 0
LANDMARK_Y = 1
LANDMARK_Z = 2
LANDMARK_VISIBILITY = 3


# Feature extraction defaults
DEFAULT_FEATURE_CONFIG = {
    "horizontal_threshold": 0.3,  # nose-to-ankle height (normalized)
    "torso_ratio": 0.7,  # torso threshold = horizontal_threshold * ratio
    "min_visibility": 0.5,  # visibility score (0-1)
    "motion_window": 30,  # frames (~1s @ 30fps)
    "angle_lookback": 30,  # frames (~1s @ 30fps)
    "min_stable_frames": 10,  # frames needed for angle change
    "pattern_window": 15,  # frames (~0.5s @ 30fps)
    "pattern_decrease_delta": 0.02,  # per-frame center drop
    "pattern_drop_delta": 0.05,  # per-frame center drop
    "still_threshold": 0.01,  # motion score
}


# False-positive filter defaults (empirically tuned)
DEFAULT_FALSE_POSITIVE_CONFIG = {
    "min_pose_confidence": 0.3,
    "sitting_window": 60,  # frames (~2s)
    "sitting_min_slow_samples": 30,
    "sitting_max_velocity": 0.1,  # normalized units/s
    "sitting_min_center_y": 0.4,
    "sitting_max_center_y": 0.7,
    "exercise_window": 90,  # frames (~3s)
    "exercise_min_reversals": 6,
    "exercise_amplitude": 0.05,
    "camera_window": 5,  # frames
    "camera_confidence_drop": 0.3,
    "nominal_frame_interval": 1 / 30,  # seconds, used when timestamps collide
}


# Confidence scorer defaults
DEFAULT_SCORER_CONFIG = {
    "velocity_threshold": 0.15,  # normalized units/s
    "fast_velocity_factor": 1.5,
    "center_y_threshold": 0.7,  # lower third of the image
    "no_motion_threshold": 0.01,
    "little_motion_threshold": 0.05,
    "angle_change_threshold": 60.0,  # degrees
    "pose_confidence_threshold": 0.5,
    "min_confidence_score": 0.7,
}


# Score weights
class ScoreWeights:
    """Additive confidence contributions of each fall signal."""

    RAPID_DESCENT = 0.30
    VERY_RAPID_DESCENT = 0.15
    LOW_POSITION = 0.25
    HORIZONTAL = 0.15
    HORIZONTAL_AT_LOW_POSITION = 0.15
    NO_MOTION = 0.20
    LITTLE_MOTION = 0.10
    ANGLE_CHANGE = 0.10
    FALL_PATTERN = 0.10


# Severity breakpoints
class SeverityThresholds:
    """Confidence breakpoints for severity tiers."""

    CRITICAL = 0.85
    CRITICAL_NO_MOTION = 0.8
    HIGH = 0.75
    MEDIUM = 0.7


# False-positive reasons
class SuppressionReasons:
    """Reasons reported when a frame does not produce a detection."""

    INSUFFICIENT_HISTORY = "insufficient_history"
    MALFORMED_LANDMARKS = "malformed_landmarks"
    EVALUATION_ERROR = "evaluation_error"
    LOW_CONFIDENCE = "low_confidence"
    SITTING = "sitting"
    EXERCISE = "exercise"
    CAMERA_MOVEMENT = "camera_movement"
    BELOW_THRESHOLD = "below_threshold"
    COOLDOWN = "cooldown"
    NOT_EVALUATED = "not_evaluated"


# Fall type labels
class FallTypes:
    """Human-readable fall type labels derived from body angle."""

    FORWARD = "forward"
    BACKWARD = "backward"
    LATERAL = "lateral"
    GENERIC = "fall"
