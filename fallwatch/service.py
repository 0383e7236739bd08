"""
Pose stream service: the engine's entry points.

Wires the session store, the rule-based detector and the event manager into
per-frame and batch processing, and answers status and feedback requests.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .api.client import AsyncNotificationClient, FallNotifier
from .config.settings import Settings
from .detectors.fall_detector import FallDetectorRuleBased
from .events.manager import FallEventManager
from .models import (
    Detected,
    DetectionOutcome,
    FallDetectionResult,
    FallEvent,
    NoDetection,
    PoseFrame,
    Session,
)
from .store.repository import (
    InMemoryFallEventRepository,
    InMemoryPoseFrameRepository,
    InMemorySessionRepository,
    PoseFrameRepository,
)
from .store.session_store import PoseSessionStore
from .store.window_store import InMemoryWindowStore
from .utils.constants import SuppressionReasons
from .utils.experiment_logger import ExperimentDataLogger

logger = logging.getLogger(__name__)

MESSAGE_PROCESSED = "Pose frame processed"
MESSAGE_BATCH_FRAME = "Frame buffered"
MESSAGE_FALL_DETECTED = "Fall detected, caregivers are being notified"


@dataclass
class FrameResult:
    """Per-frame processing response."""

    session_id: str
    frame_count: int
    fall_detected: bool
    message: str
    event_id: int | None = None
    confidence: float | None = None
    severity: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "frameCount": self.frame_count,
            "fallDetected": self.fall_detected,
            "message": self.message,
        }
        if self.fall_detected:
            data["eventId"] = self.event_id
            data["confidence"] = self.confidence
            data["severity"] = self.severity
        else:
            data["reason"] = self.reason
        return data


@dataclass
class FallStatus:
    """Monitoring state and recent incidents of one user."""

    user_id: str
    is_monitoring: bool
    session_active: bool
    current_session_id: str | None
    recent_fall_events: list[FallEvent] = field(default_factory=list)

    @property
    def last_fall_time(self) -> float | None:
        if not self.recent_fall_events:
            return None
        return max(e.detected_at for e in self.recent_fall_events)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "isMonitoring": self.is_monitoring,
            "sessionActive": self.session_active,
            "currentSessionId": self.current_session_id,
            "lastFallTime": self.last_fall_time,
            "recentFallEvents": [e.to_dict() for e in self.recent_fall_events],
        }


class PoseStreamService:
    """
    Processes pose frames for many concurrent users.

    Each frame is buffered under its session, evaluated against the user's
    recent window and, when it scores as a fall outside the cooldown period,
    turned into a fall event queued for notification. The service owns no
    global state; every collaborator is injected.
    """

    def __init__(
        self,
        store: PoseSessionStore,
        detector: FallDetectorRuleBased,
        event_manager: FallEventManager,
        frame_repository: PoseFrameRepository,
        status_lookback_hours: float = 24.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize service.

        Args:
            store: Session resolution and per-user frame windows
            detector: Stateless fall detector
            event_manager: Cooldown, event persistence and notification queue
            frame_repository: Pose frame persistence
            status_lookback_hours: Age of fall events reported by get_fall_status()
            clock: Wall clock for status queries
        """
        self.store = store
        self.detector = detector
        self.event_manager = event_manager
        self.frame_repository = frame_repository
        self.status_lookback_seconds = status_lookback_hours * 3600
        self._clock = clock

        self.frames_processed = 0

    def process_frame(self, frame: PoseFrame) -> FrameResult:
        """
        Buffer one frame and run the fall check on it.

        Args:
            frame: Incoming pose frame

        Returns:
            FrameResult for the frame
        """
        session, window = self._ingest(frame, frame.session_id, None)
        outcome = self._evaluate(frame, window)
        return self._build_result(session, outcome, MESSAGE_PROCESSED)

    def process_frame_batch(self, frames: list[PoseFrame]) -> list[FrameResult]:
        """
        Buffer frames in order under one session; evaluate only the last one.

        The session is resolved from the first frame. Earlier frames are
        buffered without evaluation.

        Args:
            frames: Frames of one user in time order

        Returns:
            One FrameResult per frame, empty for an empty batch

        Raises:
            ValueError: If the frames belong to more than one user; nothing
                is buffered in that case
        """
        if not frames:
            return []

        first = frames[0]
        foreign = {f.user_id for f in frames if f.user_id != first.user_id}
        if foreign:
            raise ValueError(
                f"Batch for user {first.user_id} contains frames of other users: "
                f"{sorted(foreign)}"
            )

        session = self.store.get_or_create_session(first.session_id, first.user_id)
        results = []

        for i, frame in enumerate(frames):
            _, window = self._ingest(frame, session.session_id, session)

            if i < len(frames) - 1:
                outcome: DetectionOutcome = NoDetection(SuppressionReasons.NOT_EVALUATED)
                results.append(self._build_result(session, outcome, MESSAGE_BATCH_FRAME))
            else:
                outcome = self._evaluate(frame, window)
                results.append(self._build_result(session, outcome, MESSAGE_PROCESSED))

        logger.debug(
            f"Processed batch of {len(frames)} frames for user {first.user_id} "
            f"session {session.session_id}"
        )
        return results

    def _ingest(
        self, frame: PoseFrame, session_id: str | None, session: Session | None
    ) -> tuple[Session, list[PoseFrame]]:
        self.detector.prepare_frame(frame)
        if session is None:
            session, window = self.store.append_frame(frame.user_id, session_id, frame)
        else:
            window = self.store.append_to_session(session, frame)
        self.frame_repository.save_pose_frame(frame)
        self.frames_processed += 1
        return session, window

    def _evaluate(self, frame: PoseFrame, window: list[PoseFrame]) -> DetectionOutcome:
        try:
            result: FallDetectionResult = self.detector.detect_fall(frame, window)
        except (ValueError, ArithmeticError, IndexError, TypeError) as e:
            logger.error(
                f"Fall check failed for user {frame.user_id} frame {frame.frame_number}: {e}",
                exc_info=True,
            )
            return NoDetection(SuppressionReasons.EVALUATION_ERROR)

        if not result.detected:
            return NoDetection(result.reason or SuppressionReasons.BELOW_THRESHOLD)

        return self.event_manager.emit(frame, result, window)

    def _build_result(
        self, session: Session, outcome: DetectionOutcome, message: str
    ) -> FrameResult:
        if isinstance(outcome, Detected):
            event = outcome.event
            return FrameResult(
                session_id=session.session_id,
                frame_count=session.total_frames,
                fall_detected=True,
                message=MESSAGE_FALL_DETECTED,
                event_id=event.id,
                confidence=event.confidence_score,
                severity=event.severity.value,
            )
        return FrameResult(
            session_id=session.session_id,
            frame_count=session.total_frames,
            fall_detected=False,
            message=message,
            reason=outcome.reason,
        )

    def get_fall_status(self, user_id: str) -> FallStatus:
        """
        Report monitoring state and fall events of the lookback period.

        Args:
            user_id: User to report on

        Returns:
            FallStatus with events newest first
        """
        session = self.store.active_session(user_id)
        since = self._clock() - self.status_lookback_seconds
        events = self.event_manager.repository.find_recent_fall_events(user_id, since)

        return FallStatus(
            user_id=user_id,
            is_monitoring=session is not None,
            session_active=session is not None and session.is_active,
            current_session_id=session.session_id if session else None,
            recent_fall_events=events,
        )

    def submit_feedback(
        self, event_id: int, is_false_positive: bool, comment: str | None = None
    ) -> FallEvent:
        """Record caregiver feedback; raises FallEventNotFoundError for unknown ids."""
        return self.event_manager.submit_feedback(event_id, is_false_positive, comment)

    def end_session(self, session_id: str) -> Session | None:
        return self.store.end_session(session_id)

    def evict_idle_buffers(self) -> int:
        """Drop frame buffers of users idle longer than the TTL."""
        evicted = self.store.window_store.evict_expired()
        self.event_manager.prune_user_locks(set(self.store.window_store.keys()))
        if evicted:
            logger.info(f"Evicted {evicted} idle frame buffers")
        return evicted

    def __repr__(self) -> str:
        return (
            f"PoseStreamService("
            f"frames={self.frames_processed}, "
            f"events={self.event_manager.total_events_emitted})"
        )


def build_service(
    settings: Settings, notifier: FallNotifier | None = None
) -> PoseStreamService:
    """
    Wire the default in-memory components from settings.

    Args:
        settings: Engine configuration
        notifier: Notification collaborator (defaults to the webhook client)

    Returns:
        Ready-to-use PoseStreamService
    """
    window_store: InMemoryWindowStore[PoseFrame] = InMemoryWindowStore(
        capacity=settings.BUFFER_CAPACITY,
        retention_seconds=settings.BUFFER_RETENTION,
        ttl_seconds=settings.BUFFER_TTL,
    )
    store = PoseSessionStore(window_store, InMemorySessionRepository())

    detector = FallDetectorRuleBased(
        min_history_frames=settings.MIN_HISTORY_FRAMES,
        filter_config={
            "camera_confidence_drop": settings.CAMERA_CONFIDENCE_DROP,
            "exercise_min_reversals": settings.EXERCISE_MIN_REVERSALS,
        },
        scorer_config={"min_confidence_score": settings.MIN_CONFIDENCE_SCORE},
    )

    if notifier is None:
        notifier = AsyncNotificationClient(
            endpoint=settings.NOTIFY_ENDPOINT,
            api_key=settings.API_KEY or None,
            timeout=settings.API_TIMEOUT,
            retry_attempts=settings.API_RETRY_ATTEMPTS,
            retry_delays=settings.API_RETRY_DELAYS,
        )

    exp_logger = ExperimentDataLogger(settings.EXP_OUTPUT_DIR) if settings.EXP_MODE else None

    event_manager = FallEventManager(
        InMemoryFallEventRepository(),
        notifier,
        cooldown_period=settings.COOLDOWN_PERIOD,
        poll_interval=settings.QUEUE_POLL_INTERVAL,
        exp_logger=exp_logger,
    )

    return PoseStreamService(
        store,
        detector,
        event_manager,
        InMemoryPoseFrameRepository(),
        status_lookback_hours=settings.STATUS_LOOKBACK_HOURS,
    )
