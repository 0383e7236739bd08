"""
Per-user sliding window of recent pose frames.
Bounded by capacity and frame-time retention, with idle expiry.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WindowedStore(Protocol[T]):
    """Capability for a keyed, time-bounded buffer of recent items."""

    def append(self, key: str, item: T) -> list[T]: ...

    def recent_since(self, key: str, seconds: float) -> list[T]: ...

    def evict_expired(self) -> int: ...

    def keys(self) -> list[str]: ...


class _UserBuffer(Generic[T]):
    """One user's frames plus the lock guarding them."""

    def __init__(self, capacity: int, now: float):
        self.frames: deque = deque(maxlen=capacity)
        self.lock = threading.Lock()
        self.last_access = now


class InMemoryWindowStore(Generic[T]):
    """
    In-process ring buffer of frames per user.

    Each user gets its own deque and lock, so appends for different users
    never contend. Frames are evicted oldest-first when the deque is full or
    when they fall outside the retention window measured from the newest
    frame's timestamp. Buffers untouched for ttl_seconds are
    dropped by evict_expired(), which also runs opportunistically on append.

    Attributes:
        capacity: Maximum frames kept per user
        retention_seconds: Frame-time span kept per user
        ttl_seconds: Idle time after which a user's buffer is dropped
    """

    def __init__(
        self,
        capacity: int = 150,
        retention_seconds: float = 5.0,
        ttl_seconds: float = 300.0,
        timestamp_of: Callable[[T], float] = lambda frame: frame.timestamp,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize store.

        Args:
            capacity: Maximum frames per user (150 = 5s @ 30fps)
            retention_seconds: Keep frames this far behind the newest one
            ttl_seconds: Drop a user's buffer after this much inactivity
            timestamp_of: Returns an item's timestamp in seconds
            clock: Monotonic clock used for idle expiry
        """
        self.capacity = capacity
        self.retention_seconds = retention_seconds
        self.ttl_seconds = ttl_seconds
        self._timestamp_of = timestamp_of
        self._clock = clock
        self._buffers: dict[str, _UserBuffer[T]] = {}
        self._last_sweep = clock()

        logger.info(
            f"Initialized WindowStore: capacity={capacity} frames, "
            f"retention={retention_seconds}s, ttl={ttl_seconds}s"
        )

    def _buffer_for(self, key: str) -> _UserBuffer[T]:
        buffer = self._buffers.get(key)
        if buffer is None:
            # setdefault is atomic, so concurrent first appends share one buffer
            buffer = self._buffers.setdefault(
                key, _UserBuffer(self.capacity, self._clock())
            )
        return buffer

    def append(self, key: str, item: T) -> list[T]:
        """
        Append an item and return the retained window.

        Args:
            key: Stream key (user id)
            item: Frame to append

        Returns:
            Retained items, most recent first
        """
        now = self._clock()
        if now - self._last_sweep >= self.ttl_seconds:
            self.evict_expired()

        while True:
            buffer = self._buffer_for(key)
            with buffer.lock:
                # evict_expired may have dropped this buffer since the lookup
                if self._buffers.get(key) is not buffer:
                    continue

                buffer.frames.append(item)
                buffer.last_access = now

                cutoff = self._timestamp_of(item) - self.retention_seconds
                while buffer.frames and self._timestamp_of(buffer.frames[0]) < cutoff:
                    buffer.frames.popleft()

                return list(reversed(buffer.frames))

    def recent_since(self, key: str, seconds: float) -> list[T]:
        """
        Get items within `seconds` of the newest item.

        Args:
            key: Stream key (user id)
            seconds: Lookback span in seconds

        Returns:
            Items newest first, empty if the key has no buffer
        """
        buffer = self._buffers.get(key)
        if buffer is None:
            return []

        with buffer.lock:
            if not buffer.frames:
                return []
            cutoff = self._timestamp_of(buffer.frames[-1]) - seconds
            return [
                item
                for item in reversed(buffer.frames)
                if self._timestamp_of(item) >= cutoff
            ]

    def evict_expired(self) -> int:
        """
        Drop buffers idle for longer than the TTL.

        Returns:
            Number of buffers dropped
        """
        now = self._clock()
        self._last_sweep = now
        evicted = 0

        for key, buffer in list(self._buffers.items()):
            with buffer.lock:
                if now - buffer.last_access >= self.ttl_seconds:
                    self._buffers.pop(key, None)
                    evicted += 1

        if evicted:
            logger.info(f"Evicted {evicted} idle frame buffers")
        return evicted

    def keys(self) -> list[str]:
        """Return the keys that currently have a buffer."""
        return list(self._buffers)

    def has_frames(self, key: str) -> bool:
        buffer = self._buffers.get(key)
        return buffer is not None and len(buffer.frames) > 0

    def clear(self, key: str | None = None):
        """Clear one user's buffer, or all buffers."""
        if key is None:
            self._buffers.clear()
        else:
            self._buffers.pop(key, None)

    def get_buffer_info(self) -> dict:
        """
        Get buffer statistics.

        Returns:
            Dictionary with buffer statistics
        """
        sizes = [len(buffer.frames) for buffer in list(self._buffers.values())]
        return {
            "num_streams": len(sizes),
            "total_frames": sum(sizes),
            "max_frames_per_stream": self.capacity,
            "largest_stream": max(sizes) if sizes else 0,
        }

    def __len__(self) -> int:
        """Return number of buffered streams."""
        return len(self._buffers)

    def __repr__(self) -> str:
        info = self.get_buffer_info()
        return (
            f"InMemoryWindowStore("
            f"streams={info['num_streams']}, "
            f"frames={info['total_frames']}, "
            f"capacity={self.capacity})"
        )
