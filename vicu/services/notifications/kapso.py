"""Kapso WhatsApp Cloud API provider."""
from __future__ import annotations

import logging
import re

import httpx

from vicu.core.config import settings
from vicu.services.notifications.base import NotificationResult, NotificationService


logger = logging.getLogger(__name__)

_PHONE_STRIP_RE = re.compile(r"[\s\-+]")


def clean_recipient(phone_number: str) -> str:
    """The Cloud API expects digits only, without the leading plus."""
    return _PHONE_STRIP_RE.sub("", phone_number)


class KapsoNotificationService(NotificationService):
    def __init__(
        self,
        api_key: str | None = None,
        phone_number_id: str | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.kapso_api_key
        self.phone_number_id = phone_number_id or settings.kapso_phone_number_id
        self.api_base = (api_base or settings.kapso_api_base).rstrip("/")
        self.timeout = timeout or settings.kapso_timeout_seconds
        self._transport = transport

    def send_text(self, *, to: str, body: str, request_id: str | None) -> NotificationResult:
        if not self.api_key:
            logger.warning("Kapso API key not configured; skipping WhatsApp message")
            return NotificationResult(status="skipped", reason="KAPSO_API_KEY not configured")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": clean_recipient(to),
            "type": "text",
            "text": {"body": body, "preview_url": False},
        }
        headers = {"Content-Type": "application/json", "X-API-Key": self.api_key}
        if request_id:
            headers["X-Request-Id"] = request_id

        url = f"{self.api_base}/{self.phone_number_id}/messages"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Kapso request failed: %s", exc)
            return NotificationResult(status="failed", reason=str(exc))

        if response.is_error:
            logger.error("Kapso rejected message: status=%s body=%s", response.status_code, response.text[:500])
            return NotificationResult(status="failed", reason=f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            messages = response.json().get("messages") or []
        except ValueError:
            messages = []
        message_id = messages[0].get("id") if messages and isinstance(messages[0], dict) else None
        logger.info("WhatsApp message sent id=%s", message_id)
        return NotificationResult(status="sent", reason="delivered to provider", message_id=message_id)
