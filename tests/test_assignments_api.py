from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vicu.core.config import settings
from vicu.db.base import Base
from vicu.db.deps import get_db
from vicu.db.models import Experiment, ExperimentCheckin, StepAssignment, User, XpEvent
from vicu.main import app
from vicu.services.notifications.base import NotificationResult

OWNER_PHONE = "+51987654321"
HELPER_PHONE = "+51912345678"


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
    monkeypatch.setattr(settings, "cron_secret", None)
    monkeypatch.setattr(settings, "public_app_url", "https://vicu.test/")
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


@pytest.fixture()
def outbox(monkeypatch):
    sent = []

    def fake_send(to, body, **kwargs):
        sent.append((to, body))
        return NotificationResult(status="sent", reason="ok", message_id=f"wamid.{len(sent)}")

    monkeypatch.setattr("vicu.services.whatsapp_service.send_message", fake_send)
    return sent


def _owner_with_step(test_client: TestClient, SessionLocal) -> dict:
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    goal = test_client.post("/experiments", json={"description": "Mudarme de departamento"}, headers=headers).json()[
        "experiment"
    ]
    with SessionLocal() as session:
        session.get(User, user_id).display_name = "Ana"
        session.commit()
    return {"user_id": user_id, "headers": headers, "goal": goal, "step": goal["steps"][0]}


def _assign(test_client: TestClient, owner: dict, **overrides):
    payload = {
        "checkin_id": owner["step"]["id"],
        "helper_name": "Luis",
        "helper_contact": "912 345 678",
        "contact_type": "whatsapp",
        "custom_message": "Te lo agradezco mucho",
    }
    payload.update(overrides)
    return test_client.post("/step-assignments", json=payload, headers=owner["headers"])


def _update_assignment(SessionLocal, assignment_id: str, **values) -> None:
    with SessionLocal() as session:
        row = session.get(StepAssignment, UUID(assignment_id))
        for key, value in values.items():
            setattr(row, key, value)
        session.commit()


def test_create_assignment_notifies_whatsapp_helper(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)

    response = _assign(test_client, owner)

    assert response.status_code == 201, response.text
    body = response.json()
    assignment = body["assignment"]
    assert assignment["helper_contact"] == HELPER_PHONE
    assert assignment["status"] == "pending"
    assert assignment["reminder_count"] == 0
    assert assignment["notification_sent_at"] is not None
    assert body["notification_sent"] is True
    assert body["public_url"].startswith("https://vicu.test/s/")
    assert len(outbox) == 1
    to, message = outbox[0]
    assert to == HELPER_PHONE
    assert "¡Hola Luis! 👋" in message
    assert "Ana te pidió ayuda con:" in message
    assert owner["step"]["step_title"] in message
    assert '"Te lo agradezco mucho"' in message
    assert body["public_url"] in message
    with SessionLocal() as session:
        row = session.get(StepAssignment, UUID(assignment["id"]))
        assert row.notification_message_id == "wamid.1"
        assert row.token_expires_at - row.created_at >= timedelta(days=6, hours=23)


def test_email_helper_only_gets_link(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)

    response = _assign(test_client, owner, helper_contact="luis@example.com", contact_type="email")

    body = response.json()
    assert response.status_code == 201
    assert body["notification_sent"] is False
    assert body["assignment"]["helper_contact"] == "luis@example.com"
    assert outbox == []


def test_failed_notification_is_reported(client, monkeypatch):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    monkeypatch.setattr(
        "vicu.services.whatsapp_service.send_message",
        lambda to, body, **kwargs: NotificationResult(status="failed", reason="provider_error"),
    )

    body = _assign(test_client, owner).json()

    assert body["notification_sent"] is False
    assert body["notification_error"] == "provider_error"
    assert body["assignment"]["notification_sent_at"] is None


@pytest.mark.parametrize(
    "overrides,detail",
    [
        ({"helper_name": "  "}, "Faltan campos requeridos"),
        ({"contact_type": None}, "Faltan campos requeridos"),
        ({"contact_type": "sms"}, "contact_type debe ser 'whatsapp' o 'email'"),
    ],
)
def test_create_validates_fields(client, outbox, overrides, detail):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)

    response = _assign(test_client, owner, **overrides)

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_create_checks_auth_and_ownership(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    stranger = {**owner, "headers": {"X-User-Id": str(uuid4())}}

    anonymous = _assign(test_client, {**owner, "headers": {}})
    forbidden = _assign(test_client, stranger)
    missing = _assign(test_client, owner, checkin_id=str(uuid4()))

    assert anonymous.status_code == 401
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "No tienes permiso para asignar este paso"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Paso no encontrado"


def test_list_assignments_for_step(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    _assign(test_client, owner)

    listed = test_client.get("/step-assignments", params={"checkin_id": owner["step"]["id"]}, headers=owner["headers"])
    no_step = test_client.get("/step-assignments", headers=owner["headers"])
    other = test_client.get(
        "/step-assignments", params={"checkin_id": owner["step"]["id"]}, headers={"X-User-Id": str(uuid4())}
    )

    assert listed.status_code == 200
    assert [item["helper_name"] for item in listed.json()["assignments"]] == ["Luis"]
    assert no_step.status_code == 400
    assert no_step.json()["detail"] == "checkin_id es requerido"
    assert other.status_code == 403


def test_public_view_by_token(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    token = _assign(test_client, owner).json()["public_url"].rsplit("/", 1)[-1]

    response = test_client.get(f"/step-assignments/{token}")

    assert response.status_code == 200
    view = response.json()["assignment"]
    assert view["owner_name"] == "Ana"
    assert view["helper_name"] == "Luis"
    assert view["step_title"] == owner["step"]["step_title"]
    assert view["experiment_title"] == owner["goal"]["title"]
    assert test_client.get("/step-assignments/not-a-token").status_code == 404


def test_expired_link_is_gone_and_marked(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    created = _assign(test_client, owner).json()
    token = created["public_url"].rsplit("/", 1)[-1]
    _update_assignment(
        SessionLocal, created["assignment"]["id"], token_expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
    )

    view = test_client.get(f"/step-assignments/{token}")
    answer = test_client.post(f"/step-assignments/{token}", json={"response": "completed"})

    assert view.status_code == 410
    assert view.json()["detail"] == "Esta solicitud ha expirado"
    assert answer.status_code == 410
    with SessionLocal() as session:
        assert session.get(StepAssignment, UUID(created["assignment"]["id"])).status == "expired"


def test_helper_completion_marks_step_done_without_xp(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    token = _assign(test_client, owner).json()["public_url"].rsplit("/", 1)[-1]

    response = test_client.post(f"/step-assignments/{token}", json={"response": "completed", "message": "Listo!"})
    again = test_client.post(f"/step-assignments/{token}", json={"response": "declined"})

    assert response.status_code == 200
    assert response.json() == {"status": "completed", "message": "¡Gracias por tu ayuda!"}
    assert again.status_code == 409
    assert again.json()["detail"] == "Esta solicitud ya fue respondida"
    with SessionLocal() as session:
        step = session.get(ExperimentCheckin, UUID(owner["step"]["id"]))
        assert step.status == "done"
        assert session.get(Experiment, UUID(owner["goal"]["id"])).streak_days == 1
        assert session.query(XpEvent).filter(XpEvent.user_id == owner["user_id"]).count() == 0
        row = session.query(StepAssignment).one()
        assert row.response_message == "Listo!"
        assert row.responded_at is not None


def test_helper_can_decline(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    token = _assign(test_client, owner).json()["public_url"].rsplit("/", 1)[-1]

    response = test_client.post(f"/step-assignments/{token}", json={"response": "declined"})
    invalid = test_client.post(f"/step-assignments/{token}", json={"response": "maybe"})

    assert response.json() == {"status": "declined", "message": "Entendido, gracias por avisar."}
    assert invalid.status_code == 400
    with SessionLocal() as session:
        assert session.get(ExperimentCheckin, UUID(owner["step"]["id"])).status == "pending"


def test_reminder_schedule_for_silent_helper(client, outbox):
    test_client, SessionLocal = client
    owner = _owner_with_step(test_client, SessionLocal)
    test_client.post("/whatsapp/config", json={"phone_number": "987 654 321"}, headers=owner["headers"])
    assignment_id = _assign(test_client, owner).json()["assignment"]["id"]
    now = datetime.now(timezone.utc)

    def run():
        response = test_client.post("/kapso/assignment-reminders")
        assert response.status_code == 200, response.text
        return response.json()

    fresh = run()
    assert (fresh["first_reminders"], fresh["final_reminders"], fresh["expired"]) == (0, 0, 0)

    _update_assignment(SessionLocal, assignment_id, created_at=now - timedelta(days=2, hours=1))
    first = run()
    assert first["first_reminders"] == 1
    assert outbox[-1][0] == HELPER_PHONE
    assert "Un recordatorio amable" in outbox[-1][1]
    assert run()["first_reminders"] == 0

    _update_assignment(SessionLocal, assignment_id, created_at=now - timedelta(days=5, hours=1))
    final = run()
    assert final["final_reminders"] == 1
    assert final["owner_notices"] == 1
    assert "último recordatorio" in outbox[-2][1]
    assert outbox[-1][0] == OWNER_PHONE
    assert "Luis aún no responde" in outbox[-1][1]

    _update_assignment(SessionLocal, assignment_id, created_at=now - timedelta(days=7, hours=1))
    expired = run()
    assert expired["expired"] == 1
    assert expired["owner_notices"] == 1
    assert outbox[-1][0] == OWNER_PHONE
    assert "expiró sin respuesta" in outbox[-1][1]

    with SessionLocal() as session:
        row = session.get(StepAssignment, UUID(assignment_id))
        assert row.status == "expired"
        assert row.reminder_count == 2
    assert run()["expired"] == 0


def test_reminder_run_requires_cron_secret(client, monkeypatch):
    test_client, _ = client
    monkeypatch.setattr(settings, "cron_secret", "s3cret")

    denied = test_client.post("/kapso/assignment-reminders")
    allowed = test_client.post("/kapso/assignment-reminders", headers={"Authorization": "Bearer s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200
