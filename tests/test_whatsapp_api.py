from __future__ import annotations

import hashlib
import hmac
import json
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vicu.core.config import settings
from vicu.db.base import Base
from vicu.db.deps import get_db
from vicu.db.models import ActivityLog, ExperimentCheckin, WhatsAppConfig, WhatsAppPendingAction
from vicu.main import app
from vicu.services import whatsapp
from vicu.services.notifications.base import NotificationResult


@pytest.fixture()
def client(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(settings, "openai_api_key", None)
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


SENDER = "51987654321"


def _link_user(test_client: TestClient) -> dict:
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    response = test_client.post("/whatsapp/config", json={"phone_number": "987 654 321"}, headers=headers)
    assert response.status_code == 200, response.text
    goal = test_client.post("/experiments", json={"description": "Escribir mi primer libro"}, headers=headers).json()[
        "experiment"
    ]
    return {"user_id": user_id, "headers": headers, "goal": goal}


def _inbound(test_client: TestClient, text: str, sender: str = SENDER, headers: dict | None = None):
    return test_client.post("/kapso/webhook", json={"from": sender, "text": {"body": text}}, headers=headers or {})


def _pending_actions(SessionLocal, user_id: UUID):
    with SessionLocal() as session:
        return (
            session.query(WhatsAppPendingAction)
            .filter(WhatsAppPendingAction.user_id == user_id)
            .all()
        )


def test_config_requires_signed_in_user(client):
    test_client, _ = client

    response = test_client.post("/whatsapp/config", json={"phone_number": "987654321"})

    assert response.status_code == 401


def test_config_requires_phone(client):
    test_client, _ = client

    response = test_client.post("/whatsapp/config", json={"phone_number": "  "}, headers={"X-User-Id": str(uuid4())})

    assert response.status_code == 400
    assert response.json()["detail"] == "Número de teléfono requerido"


def test_config_normalizes_and_relinks(client):
    test_client, SessionLocal = client
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}

    first = test_client.post("/whatsapp/config", json={"phone_number": "0987 654 321"}, headers=headers)
    second = test_client.post(
        "/whatsapp/config", json={"phone_number": "+51 912 345 678", "enabled": False}, headers=headers
    )

    assert first.json()["phone_number"] == "+51987654321"
    assert first.json()["message"] == "WhatsApp conectado"
    assert second.json()["phone_number"] == "+51912345678"
    assert second.json()["is_active"] is False
    with SessionLocal() as session:
        configs = session.query(WhatsAppConfig).filter(WhatsAppConfig.user_id == user_id).all()
        assert len(configs) == 1


def test_webhook_verification_handshake(client):
    test_client, _ = client
    params = {"hub.mode": "subscribe", "hub.challenge": "abc123"}

    ok = test_client.get("/kapso/webhook", params={**params, "hub.verify_token": settings.kapso_webhook_verify_token})
    bad = test_client.get("/kapso/webhook", params={**params, "hub.verify_token": "wrong"})

    assert ok.status_code == 200
    assert ok.text == "abc123"
    assert bad.status_code == 403


def test_webhook_rejects_bad_signature(client, monkeypatch):
    test_client, _ = client
    monkeypatch.setattr(settings, "kapso_webhook_secret", "s3cret")
    body = json.dumps({"from": SENDER, "text": {"body": "hola"}}).encode("utf-8")
    signature = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    rejected = test_client.post("/kapso/webhook", content=body, headers={"X-Webhook-Signature": "nope"})
    accepted = test_client.post(
        "/kapso/webhook",
        content=body,
        headers={"X-Webhook-Signature": signature, "Content-Type": "application/json"},
    )

    assert rejected.status_code == 401
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "unknown_sender"


def test_webhook_ignores_payload_without_message(client):
    test_client, _ = client

    response = test_client.post("/kapso/webhook", json={"event": "whatsapp.message.delivered", "data": {}})

    assert response.json()["status"] == "ignored"


def test_unknown_sender_gets_onboarding(client, monkeypatch):
    test_client, _ = client
    sent = []
    monkeypatch.setattr(
        "vicu.services.whatsapp_service.send_message",
        lambda to, body, **kwargs: sent.append((to, body)) or NotificationResult(status="skipped", reason="test"),
    )

    response = _inbound(test_client, "1", sender="51900000000")

    assert response.json()["status"] == "unknown_sender"
    assert sent == [("51900000000", whatsapp.ONBOARDING_MESSAGE)]


def test_greeting_then_done_completes_step(client):
    test_client, SessionLocal = client
    linked = _link_user(test_client)

    greeted = _inbound(test_client, "Hola Vicu")

    assert greeted.json()["status"] == "greeted"
    assert greeted.json()["reply_status"] == "skipped"
    pending = _pending_actions(SessionLocal, linked["user_id"])
    assert len(pending) == 1
    assert pending[0].status == "pending"
    assert pending[0].is_ai_generated is False
    assert str(pending[0].experiment_id) == linked["goal"]["id"]

    done = _inbound(test_client, "1")

    assert done.json() == {"status": "processed", "action": "done", "reply_status": "skipped", "new_streak": 1}
    with SessionLocal() as session:
        step = session.get(ExperimentCheckin, pending[0].checkin_id)
        assert step.status == "done"
    assert [action.status for action in _pending_actions(SessionLocal, linked["user_id"])] == ["done"]


def test_stuck_reply_offers_alternative_and_later_saves_step(client):
    test_client, SessionLocal = client
    linked = _link_user(test_client)
    _inbound(test_client, "hola")

    stuck = _inbound(test_client, "3")

    assert stuck.json()["action"] == "stuck"
    actions = _pending_actions(SessionLocal, linked["user_id"])
    assert sorted(action.status for action in actions) == ["alternative_requested", "pending"]
    alternative = next(action for action in actions if action.status == "pending")
    assert alternative.is_ai_generated is True
    assert alternative.checkin_id is None

    later = _inbound(test_client, "2")

    assert later.json()["action"] == "later"
    with SessionLocal() as session:
        saved = session.query(ExperimentCheckin).filter(ExperimentCheckin.source == "whatsapp").all()
        assert [step.step_title for step in saved] == [alternative.action_text]
        assert saved[0].status == "pending"
    with SessionLocal() as session:
        assert session.get(WhatsAppPendingAction, alternative.id).status == "skipped"


def test_message_without_pending_action_sends_new_task(client):
    test_client, SessionLocal = client
    linked = _link_user(test_client)

    response = _inbound(test_client, "qué hago hoy")

    assert response.json()["status"] == "new_task"
    assert len(_pending_actions(SessionLocal, linked["user_id"])) == 1


def test_send_reminder_without_config(client):
    test_client, _ = client

    response = test_client.post("/kapso/send-reminder", json={"user_id": str(uuid4())})

    assert response.status_code == 200
    assert response.json()["status"] == "no_config"


def test_send_reminder_requires_user(client):
    test_client, _ = client

    response = test_client.post("/kapso/send-reminder")

    assert response.status_code == 400


def test_send_reminder_audits_attempt(client):
    test_client, SessionLocal = client
    linked = _link_user(test_client)

    response = test_client.post("/kapso/send-reminder", headers=linked["headers"])

    body = response.json()
    assert body["status"] == "skipped"
    assert body["experiment_id"] == linked["goal"]["id"]
    assert linked["goal"]["title"] in body["message"]
    with SessionLocal() as session:
        logs = session.query(ActivityLog).filter(ActivityLog.action_type == "whatsapp_reminder").all()
        assert len(logs) == 1
        assert logs[0].reason == "Reminder skipped"
        assert logs[0].action_payload["result"]["status"] == "skipped"
