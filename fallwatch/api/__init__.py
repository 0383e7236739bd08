"""Notification collaborator."""

from .client import AsyncNotificationClient, FallNotifier

__all__ = ["AsyncNotificationClient", "FallNotifier"]
