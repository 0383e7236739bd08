import math

import numpy as np
import pytest

from fallwatch.detectors import FallDetectorRuleBased
from fallwatch.events import FallEventManager
from fallwatch.models import PoseFrame
from fallwatch.service import PoseStreamService
from fallwatch.store import (
    InMemoryFallEventRepository,
    InMemoryPoseFrameRepository,
    InMemorySessionRepository,
    InMemoryWindowStore,
    PoseSessionStore,
)
from fallwatch.utils.constants import NUM_LANDMARKS, PoseLandmarks

T0 = 1_700_000_000.0
FRAME_INTERVAL = 0.033


def upright_landmarks(center_y, torso=0.25, visibility=0.9):
    """Standing skeleton with the hip midpoint at center_y (angle 90 degrees)."""
    lm = np.zeros((NUM_LANDMARKS, 4))
    lm[:, 0] = 0.5
    lm[:, 1] = center_y
    lm[:, 3] = visibility

    shoulder_y = max(center_y - torso, 0.0)
    ankle_y = min(center_y + 0.35, 1.0)
    lm[PoseLandmarks.NOSE, :2] = [0.5, max(shoulder_y - 0.1, 0.0)]
    lm[PoseLandmarks.LEFT_SHOULDER, :2] = [0.45, shoulder_y]
    lm[PoseLandmarks.RIGHT_SHOULDER, :2] = [0.55, shoulder_y]
    lm[PoseLandmarks.LEFT_HIP, :2] = [0.45, center_y]
    lm[PoseLandmarks.RIGHT_HIP, :2] = [0.55, center_y]
    lm[PoseLandmarks.LEFT_ANKLE, :2] = [0.45, ankle_y]
    lm[PoseLandmarks.RIGHT_ANKLE, :2] = [0.55, ankle_y]
    return lm


def lying_landmarks(center_y=0.85, visibility=0.9):
    """Skeleton lying flat along x at center_y (angle 0 degrees)."""
    lm = np.zeros((NUM_LANDMARKS, 4))
    lm[:, 0] = 0.5
    lm[:, 1] = center_y
    lm[:, 3] = visibility

    lm[PoseLandmarks.NOSE, :2] = [0.2, center_y]
    lm[PoseLandmarks.LEFT_SHOULDER, :2] = [0.3, center_y]
    lm[PoseLandmarks.RIGHT_SHOULDER, :2] = [0.3, center_y]
    lm[PoseLandmarks.LEFT_HIP, :2] = [0.6, center_y]
    lm[PoseLandmarks.RIGHT_HIP, :2] = [0.6, center_y]
    lm[PoseLandmarks.LEFT_ANKLE, :2] = [0.9, min(center_y + 0.01, 1.0)]
    lm[PoseLandmarks.RIGHT_ANKLE, :2] = [0.9, min(center_y + 0.01, 1.0)]
    return lm


def make_frame(landmarks, index, user_id="user-1", confidence=0.9, session_id=None,
               interval=FRAME_INTERVAL, timestamp=None):
    return PoseFrame(
        user_id=user_id,
        timestamp=T0 + index * interval if timestamp is None else timestamp,
        landmarks=landmarks,
        overall_confidence=confidence,
        session_id=session_id,
        frame_number=index,
    )


def standing_frames(count=40, center_y=0.2, user_id="user-1", start=0):
    return [
        make_frame(upright_landmarks(center_y), start + i, user_id=user_id)
        for i in range(count)
    ]


def fall_frames(user_id="user-1", start=0):
    """Rise of center_y 0.2 -> 0.85 over 10 frames, then 30 still horizontal frames."""
    frames = []
    for i in range(10):
        center_y = 0.2 + i * (0.65 / 9)
        frames.append(make_frame(upright_landmarks(center_y), start + i, user_id=user_id))
    for i in range(10, 40):
        frames.append(make_frame(lying_landmarks(0.85), start + i, user_id=user_id))
    return frames


def squat_frames(count=100, period=24, user_id="user-1"):
    """Periodic squat: center_y oscillating between 0.3 and 0.6."""
    return [
        make_frame(
            upright_landmarks(0.45 + 0.15 * math.sin(2 * math.pi * i / period)),
            i,
            user_id=user_id,
            interval=1 / 30,
        )
        for i in range(count)
    ]


def sitting_frames(count=70):
    """Slow steady descent of center_y from 0.45 to 0.6."""
    return [
        make_frame(upright_landmarks(0.45 + 0.15 * i / (count - 1)), i, interval=1 / 30)
        for i in range(count)
    ]


def as_window(frames, detector=None):
    """Prepare frames in time order and return them most recent first."""
    detector = detector or FallDetectorRuleBased()
    for frame in frames:
        detector.prepare_frame(frame)
    return list(reversed(frames))


class FakeNotifier:
    """Notification collaborator recording calls."""

    def __init__(self, delivered=True, error=None):
        self.delivered = delivered
        self.error = error
        self.calls = []

    async def notify_fall(self, event):
        self.calls.append(event.id)
        if self.error is not None:
            raise self.error
        return self.delivered


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def event_manager(notifier):
    return FallEventManager(InMemoryFallEventRepository(), notifier, poll_interval=0.01)


@pytest.fixture
def service(event_manager):
    store = PoseSessionStore(InMemoryWindowStore(), InMemorySessionRepository())
    return PoseStreamService(
        store,
        FallDetectorRuleBased(),
        event_manager,
        InMemoryPoseFrameRepository(),
        clock=lambda: T0 + 60,
    )
