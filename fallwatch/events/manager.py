"""
Fall event manager with cooldown and async notification dispatch.
Creates fall events without blocking the detection path on alert delivery.
"""

import asyncio
import logging
import queue
import threading
import time
from collections.abc import Collection

from ..api.client import FallNotifier
from ..exceptions import FallEventNotFoundError
from ..models import (
    Detected,
    DetectionOutcome,
    EventStatus,
    FallDetectionResult,
    FallEvent,
    NoDetection,
    PoseFrame,
)
from ..store.repository import FallEventRepository
from ..utils.constants import FallTypes, SuppressionReasons
from ..utils.experiment_logger import ExperimentDataLogger

logger = logging.getLogger(__name__)


def determine_fall_type(body_angle: float | None, confidence: float) -> str:
    """
    Label a fall from the body angle and confidence.

    Args:
        body_angle: Shoulder-to-hip angle in degrees (None treated as 0)
        confidence: Fall confidence

    Returns:
        One of FallTypes
    """
    angle = body_angle if body_angle is not None else 0.0

    if angle > 80.0 and confidence > 0.8:
        return FallTypes.FORWARD
    elif angle < -80.0 and confidence > 0.8:
        return FallTypes.BACKWARD
    elif abs(angle) < 30.0:
        return FallTypes.LATERAL
    else:
        return FallTypes.GENERIC


class FallEventManager:
    """
    Turns positive detections into fall events.

    Prevents duplicate alerts by enforcing a cooldown per user: if any event
    was recorded for the user within the cooldown period, a new detection is
    dropped. Accepted events are persisted immediately and queued for the
    notification collaborator.

    Architecture:
    - Ingest thread calls emit() when a frame scores as a fall (non-blocking)
    - Background coroutine process_events() drains the queue
    - Each event: notify -> mark NOTIFIED (or log failure and leave DETECTED)
    """

    def __init__(
        self,
        repository: FallEventRepository,
        notifier: FallNotifier,
        cooldown_period: float = 30.0,
        poll_interval: float = 0.05,
        exp_logger: ExperimentDataLogger | None = None,
    ):
        """
        Initialize event manager.

        Args:
            repository: Fall event persistence
            notifier: Notification collaborator
            cooldown_period: Seconds after an event during which new detections
                for the same user are dropped
            poll_interval: Queue polling interval of process_events()
            exp_logger: Optional incident data logger
        """
        self.repository = repository
        self.notifier = notifier
        self.cooldown_period = cooldown_period
        self.poll_interval = poll_interval
        self.exp_logger = exp_logger

        # Thread-safe: emit() runs on ingest threads, dispatch on the event loop
        self.queue: queue.Queue = queue.Queue()

        # Per-user locks so the cooldown check and save happen atomically
        self._user_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        # Statistics
        self.total_events_emitted = 0
        self.total_events_suppressed = 0
        self.total_events_notified = 0
        self.total_events_failed = 0
        self.last_event_time: float = 0

        # Running flag
        self.running = False

        if exp_logger is not None:
            logger.info(f"Incident data logging enabled: {exp_logger.output_dir}")

        logger.info(f"Initialized FallEventManager: cooldown={self.cooldown_period}s")

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._user_locks.setdefault(user_id, threading.Lock())

    def prune_user_locks(self, active_user_ids: Collection[str]) -> int:
        """
        Drop cooldown locks of users that are no longer streaming.

        Args:
            active_user_ids: Users that still have buffered frames

        Returns:
            Number of locks dropped
        """
        with self._locks_guard:
            stale = [
                user_id
                for user_id, lock in self._user_locks.items()
                if user_id not in active_user_ids and not lock.locked()
            ]
            for user_id in stale:
                del self._user_locks[user_id]

        if stale:
            logger.debug(f"Dropped {len(stale)} idle user locks")
        return len(stale)

    def is_in_cooldown(self, user_id: str, at: float) -> bool:
        """
        Check whether the user had an event within the cooldown period.

        Args:
            user_id: User to check
            at: Reference time (timestamp of the detecting frame)

        Returns:
            True if a recent event exists
        """
        recent = self.repository.find_fall_events_since(user_id, at - self.cooldown_period)
        return len(recent) > 0

    def emit(
        self,
        frame: PoseFrame,
        result: FallDetectionResult,
        window: list[PoseFrame] | None = None,
    ) -> DetectionOutcome:
        """
        Create a fall event for a positive detection (called from ingest path).

        Args:
            frame: Frame that produced the detection
            result: Positive detection result
            window: Recent frames, most recent first, for the motion trace

        Returns:
            Detected(event) if an event was created, NoDetection if the user is
            in cooldown or the result is not a detection
        """
        if not result.detected:
            return NoDetection(result.reason or SuppressionReasons.BELOW_THRESHOLD)

        with self._lock_for(frame.user_id):
            if self.is_in_cooldown(frame.user_id, frame.timestamp):
                self.total_events_suppressed += 1
                logger.info(
                    f"Fall detected for user {frame.user_id} but in cooldown period, "
                    f"ignoring duplicate"
                )
                return NoDetection(SuppressionReasons.COOLDOWN)

            motion_before = [
                f.center_y for f in reversed(window or []) if f.center_y is not None
            ]
            event = FallEvent(
                user_id=frame.user_id,
                session_id=frame.session_id,
                detected_at=frame.timestamp,
                severity=result.severity,
                confidence_score=result.confidence,
                body_angle=result.body_angle,
                status=EventStatus.DETECTED,
                notification_sent=False,
                false_positive=False,
                fall_type=determine_fall_type(result.body_angle, result.confidence),
                motion_before=motion_before,
            )
            event = self.repository.save_fall_event(event)

        self.total_events_emitted += 1
        self.last_event_time = event.detected_at
        logger.info(
            f"Fall event {event.id} created for user {event.user_id}: "
            f"severity={event.severity.value}, confidence={event.confidence_score:.2f}, "
            f"type={event.fall_type}"
        )

        if self.exp_logger is not None:
            try:
                self.exp_logger.save_fall_event(
                    event, result, frame.landmarks, metadata={"session_id": frame.session_id}
                )
            except OSError as e:
                logger.warning(f"Failed to save incident data for event {event.id}: {e}")

        self.queue.put_nowait(event)
        return Detected(event)

    async def process_events(self):
        """
        Background task: dispatch queued events to the notifier.

        This should be run as an asyncio task, or in its own thread's event
        loop:
            task = asyncio.create_task(manager.process_events())
        """
        self.running = True
        logger.info("Event processor started")

        try:
            while self.running:
                try:
                    event = self.queue.get_nowait()
                except queue.Empty:
                    await asyncio.sleep(self.poll_interval)
                    continue

                try:
                    await self._dispatch(event)
                finally:
                    self.queue.task_done()

        except asyncio.CancelledError:
            logger.info("Event processor cancelled")
            raise

        finally:
            logger.info("Event processor stopped")

    async def process_pending(self) -> int:
        """
        Dispatch everything currently queued, then return.

        Returns:
            Number of events dispatched
        """
        dispatched = 0
        while True:
            try:
                event = self.queue.get_nowait()
            except queue.Empty:
                return dispatched
            try:
                await self._dispatch(event)
            finally:
                self.queue.task_done()
            dispatched += 1

    async def _dispatch(self, event: FallEvent):
        """
        Notify about one event and record the outcome.

        Failures are logged and leave the event DETECTED; there is no retry here.
        """
        try:
            delivered = await self.notifier.notify_fall(event)
        except Exception as e:
            logger.error(f"Notification for fall event {event.id} raised: {e}", exc_info=True)
            delivered = False

        if not delivered:
            self.total_events_failed += 1
            logger.error(f"Failed to notify about fall event {event.id}, left as DETECTED")
            return

        event.notification_sent = True
        event.notification_sent_at = time.time()
        # Feedback may already have marked the event as a false positive
        if event.status == EventStatus.DETECTED:
            event.status = EventStatus.NOTIFIED
        self.repository.save_fall_event(event)
        self.total_events_notified += 1
        logger.info(f"Fall event {event.id} notified")

    def submit_feedback(
        self, event_id: int, is_false_positive: bool, comment: str | None = None
    ) -> FallEvent:
        """
        Record caregiver feedback on an event.

        Args:
            event_id: Event to update
            is_false_positive: Whether the event was a false alarm
            comment: Free-text feedback

        Returns:
            The updated event

        Raises:
            FallEventNotFoundError: If no event has this id
        """
        event = self.repository.find_by_id(event_id)
        if event is None:
            raise FallEventNotFoundError(event_id)

        event.false_positive = bool(is_false_positive)
        event.user_feedback = comment
        if is_false_positive:
            event.status = EventStatus.FALSE_POSITIVE

        self.repository.save_fall_event(event)
        logger.info(
            f"Feedback recorded for fall event {event_id}: "
            f"false_positive={event.false_positive}"
        )
        return event

    async def stop(self, timeout: float = 30.0):
        """
        Stop event processor gracefully.

        Dispatches what is still queued (bounded by timeout) before stopping.
        """
        logger.info("Stopping event processor...")
        self.running = False

        remaining = self.queue.qsize()
        if remaining > 0:
            logger.info(f"Dispatching {remaining} remaining events...")
            try:
                await asyncio.wait_for(self.process_pending(), timeout=timeout)
            except TimeoutError:
                logger.warning(
                    f"Timeout dispatching remaining events, "
                    f"{self.queue.qsize()} events remain"
                )

    def get_statistics(self) -> dict:
        """
        Get event processing statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            "total_emitted": self.total_events_emitted,
            "total_suppressed": self.total_events_suppressed,
            "total_notified": self.total_events_notified,
            "total_failed": self.total_events_failed,
            "queue_size": self.queue.qsize(),
            "success_rate": (
                self.total_events_notified / self.total_events_emitted * 100
                if self.total_events_emitted > 0
                else 0
            ),
            "last_event_time": self.last_event_time,
        }

    def log_statistics(self):
        """Log current statistics."""
        stats = self.get_statistics()
        logger.info("=" * 60)
        logger.info("Fall Event Statistics")
        logger.info("=" * 60)
        logger.info(f"Events Emitted: {stats['total_emitted']}")
        logger.info(f"Events Suppressed (cooldown): {stats['total_suppressed']}")
        logger.info(f"Events Notified: {stats['total_notified']}")
        logger.info(f"Events Failed: {stats['total_failed']}")
        logger.info(f"Success Rate: {stats['success_rate']:.1f}%")
        logger.info(f"Queue Size: {stats['queue_size']}")
        logger.info("=" * 60)

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return (
            f"FallEventManager("
            f"emitted={stats['total_emitted']}, "
            f"notified={stats['total_notified']}, "
            f"queue={stats['queue_size']})"
        )
