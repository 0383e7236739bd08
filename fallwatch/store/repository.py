"""
Persistence collaborators consumed by the engine.

The Protocols describe what the engine needs from storage. The in-memory
implementations back the replay runner and the test suite; a deployment
plugs in its own database-backed classes with the same methods.
"""

import itertools
import logging
import threading
from collections import defaultdict
from typing import Protocol

from ..models import FallEvent, PoseFrame, Session, SessionStatus

logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    def find_by_session_id(self, session_id: str) -> Session | None: ...

    def find_active_by_user(self, user_id: str) -> Session | None: ...

    def save_session(self, session: Session) -> Session: ...


class PoseFrameRepository(Protocol):
    def save_pose_frame(self, frame: PoseFrame) -> PoseFrame: ...


class FallEventRepository(Protocol):
    def save_fall_event(self, event: FallEvent) -> FallEvent: ...

    def find_by_id(self, event_id: int) -> FallEvent | None: ...

    def find_recent_fall_events(self, user_id: str, since: float) -> list[FallEvent]: ...

    def find_fall_events_since(self, user_id: str, cutoff: float) -> list[FallEvent]: ...


class InMemorySessionRepository:
    """Sessions keyed by session id."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def find_by_session_id(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def find_active_by_user(self, user_id: str) -> Session | None:
        with self._lock:
            active = [
                s
                for s in self._sessions.values()
                if s.user_id == user_id and s.status == SessionStatus.ACTIVE
            ]
        if not active:
            return None
        return max(active, key=lambda s: s.start_time)

    def save_session(self, session: Session) -> Session:
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def __len__(self) -> int:
        return len(self._sessions)


class InMemoryPoseFrameRepository:
    """
    Keeps the most recent frames per user.

    Long-term frame history belongs to the deployment's database; this
    implementation only keeps enough to inspect a replay.
    """

    def __init__(self, max_frames_per_user: int = 1000):
        self.max_frames_per_user = max_frames_per_user
        self._frames: dict[str, list[PoseFrame]] = defaultdict(list)
        self._lock = threading.Lock()
        self.total_saved = 0

    def save_pose_frame(self, frame: PoseFrame) -> PoseFrame:
        with self._lock:
            frames = self._frames[frame.user_id]
            frames.append(frame)
            if len(frames) > self.max_frames_per_user:
                del frames[0]
            self.total_saved += 1
        return frame

    def frames_for(self, user_id: str) -> list[PoseFrame]:
        with self._lock:
            return list(self._frames.get(user_id, []))


class InMemoryFallEventRepository:
    """Fall events with sequential integer ids."""

    def __init__(self):
        self._events: dict[int, FallEvent] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def save_fall_event(self, event: FallEvent) -> FallEvent:
        with self._lock:
            if event.id is None:
                event.id = next(self._ids)
            self._events[event.id] = event
        return event

    def find_by_id(self, event_id: int) -> FallEvent | None:
        return self._events.get(event_id)

    def find_recent_fall_events(self, user_id: str, since: float) -> list[FallEvent]:
        """Events for a user detected at or after `since`, newest first."""
        with self._lock:
            events = [
                e
                for e in self._events.values()
                if e.user_id == user_id and e.detected_at >= since
            ]
        return sorted(events, key=lambda e: e.detected_at, reverse=True)

    def find_fall_events_since(self, user_id: str, cutoff: float) -> list[FallEvent]:
        """Events for a user detected strictly after `cutoff`."""
        with self._lock:
            return [
                e
                for e in self._events.values()
                if e.user_id == user_id and e.detected_at > cutoff
            ]

    def all_events(self) -> list[FallEvent]:
        with self._lock:
            return sorted(self._events.values(), key=lambda e: e.detected_at)
