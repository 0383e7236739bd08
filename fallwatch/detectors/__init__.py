"""Feature extraction, false-positive filtering and fall scoring."""

from .fall_detector import FallDetectorRuleBased
from .features import FeatureExtractor, validate_landmarks
from .filters import FalsePositiveFilter
from .scorer import ConfidenceScorer, resolve_severity

__all__ = [
    "FallDetectorRuleBased",
    "FeatureExtractor",
    "FalsePositiveFilter",
    "ConfidenceScorer",
    "resolve_severity",
    "validate_landmarks",
]
