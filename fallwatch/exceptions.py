"""Exceptions raised by the fall detection engine."""


class FallWatchError(Exception):
    """Base class for engine errors."""


class MalformedLandmarksError(FallWatchError, ValueError):
    """Landmark array is missing expected points or holds out-of-range values."""


class FallEventNotFoundError(FallWatchError, LookupError):
    """No fall event exists with the requested id."""

    def __init__(self, event_id):
        super().__init__(f"Fall event not found: {event_id}")
        self.event_id = event_id
