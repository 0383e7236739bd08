"""
Fall detection engine for streamed body-landmark data.

This package provides a modular fall detection pipeline with the following components:
- Per-user frame buffering and session tracking
- Rule-based fall detection with false-positive filtering
- Fall event deduplication and async caregiver notification
"""

from .detectors.fall_detector import FallDetectorRuleBased
from .events.manager import FallEventManager
from .exceptions import FallEventNotFoundError, FallWatchError, MalformedLandmarksError
from .models import (
    Detected,
    FallDetectionResult,
    FallEvent,
    NoDetection,
    PoseFrame,
    Session,
    Severity,
)
from .service import FallStatus, FrameResult, PoseStreamService, build_service

__version__ = "1.0.0"

__all__ = [
    "PoseStreamService",
    "build_service",
    "FrameResult",
    "FallStatus",
    "FallDetectorRuleBased",
    "FallEventManager",
    "PoseFrame",
    "Session",
    "FallEvent",
    "FallDetectionResult",
    "Severity",
    "Detected",
    "NoDetection",
    "FallWatchError",
    "MalformedLandmarksError",
    "FallEventNotFoundError",
]
