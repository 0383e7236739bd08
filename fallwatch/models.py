"""
Data structures for pose frames, monitoring sessions and fall events.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt

from .utils.constants import NUM_LANDMARKS

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Coarse triage tier of a fall event."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @property
    def description(self) -> str:
        return _SEVERITY_DESCRIPTIONS[self]


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]

_SEVERITY_DESCRIPTIONS = {
    Severity.LOW: "minor",
    Severity.MEDIUM: "moderate",
    Severity.HIGH: "serious",
    Severity.CRITICAL: "critical",
}


class EventStatus(Enum):
    DETECTED = "DETECTED"
    NOTIFIED = "NOTIFIED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class SessionStatus(Enum):
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


def _parse_timestamp(value: Any) -> float:
    """
    Convert a payload timestamp to epoch seconds.

    Args:
        value: Epoch seconds (int/float), ISO-8601 string or datetime

    Returns:
        Epoch seconds as float
    """
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return datetime.fromisoformat(value).timestamp()
    return float(value)


def _parse_landmarks(raw: Any) -> npt.NDArray[np.float64]:
    """
    Convert payload landmarks to an (N, 4) array [x, y, z, visibility].

    Accepts a list of dicts with x/y/z/visibility keys or a list of
    4-element sequences. Anything that cannot be converted yields an
    empty array, which the feature extractor reports as malformed.
    """
    if raw is None:
        return np.empty((0, 4))

    rows = []
    try:
        for item in raw:
            if isinstance(item, dict):
                rows.append(
                    [
                        item.get("x"),
                        item.get("y"),
                        item.get("z", 0.0),
                        item.get("visibility", 0.0),
                    ]
                )
            else:
                rows.append(list(item))
        landmarks = np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError) as e:
        logger.warning(f"Unparseable landmark payload: {e}")
        return np.empty((0, 4))

    if landmarks.ndim != 2:
        return np.empty((0, 4))
    return landmarks


@dataclass
class PoseFrame:
    """
    One pose observation for a user.

    Landmarks are a (33, 4) array of [x, y, z, visibility] rows indexed by
    PoseLandmarks. Derived fields start as None and are filled once: center_y
    at ingestion, the rest by the feature extractor when the frame is evaluated.
    """

    user_id: str
    timestamp: float
    landmarks: npt.NDArray[np.float64]
    overall_confidence: float | None = None
    session_id: str | None = None
    frame_number: int = 0

    # Derived
    center_y: float | None = None
    velocity_y: float | None = None
    is_horizontal: bool | None = None
    motion_score: float | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PoseFrame":
        """
        Build a frame from a transport payload.

        Args:
            payload: Dictionary with userId/user_id, timestamp, landmarks,
                overallConfidence/overall_confidence, sessionId/session_id,
                frameNumber/frame_number

        Returns:
            New PoseFrame
        """
        user_id = payload.get("userId", payload.get("user_id"))
        if user_id is None:
            raise ValueError("Pose payload has no user id")

        confidence = payload.get(
            "overallConfidence", payload.get("overall_confidence")
        )

        return cls(
            user_id=str(user_id),
            timestamp=_parse_timestamp(payload["timestamp"]),
            landmarks=_parse_landmarks(payload.get("landmarks")),
            overall_confidence=None if confidence is None else float(confidence),
            session_id=payload.get("sessionId", payload.get("session_id")) or None,
            frame_number=int(payload.get("frameNumber", payload.get("frame_number", 0))),
        )

    @property
    def has_full_skeleton(self) -> bool:
        return self.landmarks.shape == (NUM_LANDMARKS, 4)


@dataclass
class Session:
    """One continuous monitoring stream for a user."""

    session_id: str
    user_id: str
    start_time: float
    status: SessionStatus = SessionStatus.ACTIVE
    total_frames: int = 0
    end_time: float | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


@dataclass
class FallEvent:
    """
    One detected fall incident.

    Created once by the event manager. Afterwards only notification
    bookkeeping and caregiver feedback change it.
    """

    user_id: str
    session_id: str | None
    detected_at: float
    severity: Severity
    confidence_score: float
    body_angle: float
    status: EventStatus = EventStatus.DETECTED
    false_positive: bool = False
    notification_sent: bool = False
    notification_sent_at: float | None = None
    fall_type: str | None = None
    user_feedback: str | None = None
    motion_before: list[float] = field(default_factory=list)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used in notifications and status responses."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "sessionId": self.session_id,
            "detectedAt": datetime.fromtimestamp(self.detected_at).isoformat(),
            "severity": self.severity.value,
            "severityLabel": self.severity.description,
            "confidenceScore": round(self.confidence_score, 4),
            "status": self.status.value,
            "bodyAngle": round(self.body_angle, 2),
            "fallType": self.fall_type,
            "falsePositive": self.false_positive,
            "notificationSent": self.notification_sent,
        }


@dataclass(frozen=True)
class FrameFeatures:
    """Kinematic features derived for one frame."""

    center_y: float
    velocity_y: float
    is_horizontal: bool
    motion_score: float
    body_angle: float
    angle_change: float
    fall_pattern: bool


@dataclass(frozen=True)
class FallDetectionResult:
    """Outcome of scoring one frame."""

    detected: bool
    confidence: float
    severity: Severity
    body_angle: float = 0.0
    reason: str | None = None
    features: FrameFeatures | None = None
    signals: tuple[str, ...] = ()

    @classmethod
    def no_determination(cls, reason: str) -> "FallDetectionResult":
        return cls(detected=False, confidence=0.0, severity=Severity.LOW, reason=reason)


@dataclass(frozen=True)
class NoDetection:
    """No event was emitted for the frame."""

    reason: str


@dataclass(frozen=True)
class Detected:
    """A new fall event was emitted for the frame."""

    event: FallEvent


DetectionOutcome = NoDetection | Detected
