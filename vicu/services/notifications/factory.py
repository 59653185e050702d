"""Notification service factory."""
from __future__ import annotations

from functools import lru_cache

from vicu.core.config import settings
from vicu.services.notifications.base import NotificationService
from vicu.services.notifications.kapso import KapsoNotificationService
from vicu.services.notifications.noop import NoopNotificationService


@lru_cache
def get_notification_service() -> NotificationService:
    provider = settings.notifications_provider.lower()
    if provider == "kapso":
        return KapsoNotificationService()
    return NoopNotificationService()
