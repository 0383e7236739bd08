"""Configuration management module for the fall detection engine."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
