"""
Utility modules for the fall detection engine.
"""

from .constants import (
    DEFAULT_FALSE_POSITIVE_CONFIG,
    DEFAULT_FEATURE_CONFIG,
    DEFAULT_SCORER_CONFIG,
    NUM_LANDMARKS,
    FallTypes,
    PoseLandmarks,
    SeverityThresholds,
    SuppressionReasons,
)

__all__ = [
    # Constants
    "PoseLandmarks",
    "NUM_LANDMARKS",
    "DEFAULT_FEATURE_CONFIG",
    "DEFAULT_FALSE_POSITIVE_CONFIG",
    "DEFAULT_SCORER_CONFIG",
    "SeverityThresholds",
    "SuppressionReasons",
    "FallTypes",
]
