import asyncio

import pytest
from conftest import T0, FakeNotifier, as_window, fall_frames

from fallwatch.events import FallEventManager, determine_fall_type
from fallwatch.exceptions import FallEventNotFoundError
from fallwatch.models import (
    Detected,
    EventStatus,
    FallDetectionResult,
    NoDetection,
    Severity,
)
from fallwatch.store import InMemoryFallEventRepository
from fallwatch.utils.experiment_logger import ExperimentDataLogger


def positive_result(confidence=0.85, severity=Severity.CRITICAL, body_angle=0.0):
    return FallDetectionResult(
        detected=True, confidence=confidence, severity=severity, body_angle=body_angle
    )


def emit_at(manager, timestamp, user_id="user-1"):
    window = as_window(fall_frames(user_id=user_id))
    frame = window[0]
    frame.timestamp = timestamp
    frame.session_id = "session-1"
    return manager.emit(frame, positive_result(), window)


def test_emit_creates_detected_event(event_manager):
    outcome = emit_at(event_manager, T0)

    assert isinstance(outcome, Detected)
    event = outcome.event
    assert event.id == 1
    assert event.status == EventStatus.DETECTED
    assert event.detected_at == T0
    assert event.session_id == "session-1"
    assert event.severity == Severity.CRITICAL
    assert event.fall_type == "lateral"
    assert not event.notification_sent
    assert len(event.motion_before) == 40
    assert event.motion_before[0] == pytest.approx(0.2)
    assert event.motion_before[-1] == pytest.approx(0.85)
    assert event_manager.queue.qsize() == 1


def test_cooldown_suppresses_duplicates(event_manager):
    assert isinstance(emit_at(event_manager, T0), Detected)

    outcome = emit_at(event_manager, T0 + 10)
    assert isinstance(outcome, NoDetection)
    assert outcome.reason == "cooldown"

    assert isinstance(emit_at(event_manager, T0 + 31), Detected)
    assert event_manager.total_events_suppressed == 1


def test_cooldown_is_per_user(event_manager):
    assert isinstance(emit_at(event_manager, T0, user_id="user-1"), Detected)
    assert isinstance(emit_at(event_manager, T0 + 1, user_id="user-2"), Detected)


def test_emit_ignores_negative_result(event_manager):
    window = as_window(fall_frames())
    result = FallDetectionResult.no_determination("below_threshold")

    outcome = event_manager.emit(window[0], result, window)

    assert outcome == NoDetection("below_threshold")
    assert event_manager.queue.qsize() == 0


def test_successful_dispatch_marks_notified(event_manager, notifier):
    event = emit_at(event_manager, T0).event

    assert asyncio.run(event_manager.process_pending()) == 1

    assert notifier.calls == [event.id]
    assert event.status == EventStatus.NOTIFIED
    assert event.notification_sent
    assert event.notification_sent_at is not None


@pytest.mark.parametrize(
    "notifier", [FakeNotifier(delivered=False), FakeNotifier(error=RuntimeError("down"))]
)
def test_failed_dispatch_leaves_event_detected(event_manager, notifier):
    event = emit_at(event_manager, T0).event

    asyncio.run(event_manager.process_pending())

    assert event.status == EventStatus.DETECTED
    assert not event.notification_sent
    assert event_manager.total_events_failed == 1


def test_dispatch_keeps_false_positive(event_manager):
    event = emit_at(event_manager, T0).event
    event_manager.submit_feedback(event.id, True, "false alarm")

    asyncio.run(event_manager.process_pending())

    assert event.status == EventStatus.FALSE_POSITIVE
    assert event.notification_sent


def test_submit_feedback_is_idempotent(event_manager):
    event = emit_at(event_manager, T0).event

    first = event_manager.submit_feedback(event.id, True, "false alarm")
    second = event_manager.submit_feedback(event.id, True, "false alarm")

    assert first is second
    assert second.status == EventStatus.FALSE_POSITIVE
    assert second.false_positive
    assert second.user_feedback == "false alarm"


def test_submit_feedback_unknown_event(event_manager):
    with pytest.raises(FallEventNotFoundError) as excinfo:
        event_manager.submit_feedback(999, True)
    assert excinfo.value.event_id == 999


def test_process_events_background_task(event_manager, notifier):
    async def run():
        task = asyncio.create_task(event_manager.process_events())
        event = emit_at(event_manager, T0).event
        for _ in range(200):
            if event_manager.total_events_notified:
                break
            await asyncio.sleep(0.01)
        event_manager.running = False
        await task
        return event

    event = asyncio.run(run())
    assert event.status == EventStatus.NOTIFIED
    assert event_manager.queue.qsize() == 0


def test_stop_drains_queue(event_manager, notifier):
    emit_at(event_manager, T0)
    emit_at(event_manager, T0 + 60)

    asyncio.run(event_manager.stop())

    assert len(notifier.calls) == 2
    assert event_manager.get_statistics()["success_rate"] == 100


@pytest.mark.parametrize(
    "angle,confidence,expected",
    [
        (85.0, 0.9, "forward"),
        (-85.0, 0.9, "backward"),
        (85.0, 0.75, "fall"),
        (10.0, 0.75, "lateral"),
        (None, 0.9, "lateral"),
        (45.0, 0.9, "fall"),
    ],
)
def test_determine_fall_type(angle, confidence, expected):
    assert determine_fall_type(angle, confidence) == expected


def test_incident_data_is_saved(tmp_path, notifier):
    exp_logger = ExperimentDataLogger(tmp_path)
    manager = FallEventManager(InMemoryFallEventRepository(), notifier, exp_logger=exp_logger)

    event = emit_at(manager, T0).event

    saved = exp_logger.list_events()
    assert len(saved) == 1
    data = exp_logger.load_event_data(saved[0])
    assert data["event"]["id"] == event.id
    assert data["landmarks"].shape == (33, 4)
    assert data["motion_before"] == event.motion_before
    assert exp_logger.get_statistics()["total_events"] == 1


def test_prune_user_locks(event_manager):
    emit_at(event_manager, T0, user_id="user-1")
    emit_at(event_manager, T0, user_id="user-2")

    assert event_manager.prune_user_locks({"user-2"}) == 1
    assert set(event_manager._user_locks) == {"user-2"}

    # A pruned user gets a fresh lock and the cooldown still applies
    outcome = emit_at(event_manager, T0 + 5, user_id="user-1")
    assert outcome.reason == "cooldown"


def test_incident_data_records_scored_signals(tmp_path, notifier):
    exp_logger = ExperimentDataLogger(tmp_path)
    manager = FallEventManager(InMemoryFallEventRepository(), notifier, exp_logger=exp_logger)

    window = as_window(fall_frames())
    frame = window[0]
    result = FallDetectionResult(
        detected=True,
        confidence=0.85,
        severity=Severity.CRITICAL,
        signals=("low_position", "horizontal", "no_motion"),
    )
    manager.emit(frame, result, window)

    data = exp_logger.load_event_data(exp_logger.list_events()[0])
    assert data["triggered_conditions"] == ["low_position", "horizontal", "no_motion"]
