"""Frame buffering, session resolution and persistence collaborators."""

from .repository import (
    FallEventRepository,
    InMemoryFallEventRepository,
    InMemoryPoseFrameRepository,
    InMemorySessionRepository,
    PoseFrameRepository,
    SessionRepository,
)
from .session_store import PoseSessionStore
from .window_store import InMemoryWindowStore, WindowedStore

__all__ = [
    "WindowedStore",
    "InMemoryWindowStore",
    "PoseSessionStore",
    "SessionRepository",
    "PoseFrameRepository",
    "FallEventRepository",
    "InMemorySessionRepository",
    "InMemoryPoseFrameRepository",
    "InMemoryFallEventRepository",
]
