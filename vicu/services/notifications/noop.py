"""No-op notification provider (logs only)."""
from __future__ import annotations

import logging

from vicu.services.notifications.base import NotificationResult, NotificationService


logger = logging.getLogger(__name__)


class NoopNotificationService(NotificationService):
    def send_text(self, *, to: str, body: str, request_id: str | None) -> NotificationResult:
        logger.info("Notification queued (noop) whatsapp to=%s chars=%s", to, len(body))
        return NotificationResult(status="noop", reason="notification provider is noop")
