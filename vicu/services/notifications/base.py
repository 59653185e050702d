"""Notification service interface."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class NotificationResult:
    status: str
    reason: str
    message_id: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status == "sent"


class NotificationService:
    """Base interface for outbound WhatsApp providers."""

    def send_text(self, *, to: str, body: str, request_id: str | None) -> NotificationResult:
        raise NotImplementedError
