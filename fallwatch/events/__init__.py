"""Fall event deduplication and notification dispatch."""

from .manager import FallEventManager, determine_fall_type

__all__ = ["FallEventManager", "determine_fall_type"]
