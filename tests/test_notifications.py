"""Tests for the WhatsApp notification providers."""
from __future__ import annotations

import json

import httpx
import pytest

from vicu.core.config import settings
from vicu.services.notifications import factory
from vicu.services.notifications.kapso import KapsoNotificationService, clean_recipient
from vicu.services.notifications.noop import NoopNotificationService


def _service(handler) -> KapsoNotificationService:
    return KapsoNotificationService(
        api_key="kapso-key",
        phone_number_id="12083619224",
        api_base="https://api.kapso.test/meta/whatsapp/v24.0/",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


def test_clean_recipient() -> None:
    assert clean_recipient("+51 987-654-321") == "51987654321"


def test_kapso_posts_text_message() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.abc"}]})

    result = _service(handler).send_text(to="+51 987 654 321", body="Hola", request_id="req-1")

    assert result.status == "sent"
    assert result.delivered is True
    assert result.message_id == "wamid.abc"
    request = seen[0]
    assert str(request.url) == "https://api.kapso.test/meta/whatsapp/v24.0/12083619224/messages"
    assert request.headers["X-API-Key"] == "kapso-key"
    assert request.headers["X-Request-Id"] == "req-1"
    body = json.loads(request.content)
    assert body["to"] == "51987654321"
    assert body["type"] == "text"
    assert body["text"] == {"body": "Hola", "preview_url": False}


def test_kapso_error_status_is_failure() -> None:
    result = _service(lambda request: httpx.Response(400, text="bad number")).send_text(
        to="51987654321", body="Hola", request_id=None
    )

    assert result.status == "failed"
    assert "HTTP 400" in result.reason
    assert result.delivered is False


def test_kapso_transport_error_is_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    result = _service(handler).send_text(to="51987654321", body="Hola", request_id=None)

    assert result.status == "failed"


def test_kapso_without_key_skips() -> None:
    service = KapsoNotificationService(api_key="", transport=httpx.MockTransport(lambda request: pytest.fail()))

    assert service.send_text(to="51987654321", body="Hola", request_id=None).status == "skipped"


def test_noop_provider() -> None:
    result = NoopNotificationService().send_text(to="51987654321", body="Hola", request_id=None)

    assert result.status == "noop"


def test_factory_selects_provider(monkeypatch) -> None:
    factory.get_notification_service.cache_clear()
    monkeypatch.setattr(settings, "notifications_provider", "kapso")
    try:
        assert isinstance(factory.get_notification_service(), KapsoNotificationService)
        factory.get_notification_service.cache_clear()
        monkeypatch.setattr(settings, "notifications_provider", "noop")
        assert isinstance(factory.get_notification_service(), NoopNotificationService)
    finally:
        factory.get_notification_service.cache_clear()
