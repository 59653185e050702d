from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vicu.core.config import settings
from vicu.db.base import Base
from vicu.db.deps import get_db
from vicu.db.models import ActivityLog, Experiment, ExperimentAction, ExperimentCheckin
from vicu.main import app
from vicu.services import reminder_runner
from vicu.services.notifications.base import NotificationResult
from vicu.services.reminder_runner import DailyStats, GoalDay

LIMA = ZoneInfo("America/Lima")
# 09:00 in Lima.
MORNING = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)


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
    monkeypatch.setattr(settings, "default_timezone", "America/Lima")
    monkeypatch.setattr(settings, "cron_secret", None)
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


def _linked_user(test_client: TestClient) -> dict:
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    test_client.post("/whatsapp/config", json={"phone_number": "987 654 321"}, headers=headers)
    goal = test_client.post("/experiments", json={"description": "Aprender a tocar guitarra"}, headers=headers).json()[
        "experiment"
    ]
    return {"user_id": user_id, "headers": headers, "goal": goal}


def _daily_logs(SessionLocal, user_id: UUID):
    with SessionLocal() as session:
        return (
            session.query(ActivityLog)
            .filter(ActivityLog.user_id == user_id, ActivityLog.action_type == "whatsapp_daily_reminder")
            .all()
        )


@pytest.mark.parametrize(
    "local_time,expected",
    [
        (time(7, 59), None),
        (time(8, 0), "MORNING_KICKOFF"),
        (time(11, 30), "MORNING_KICKOFF"),
        (time(12, 0), "MIDDAY_NUDGE"),
        (time(17, 45), "AFTERNOON_PUSH"),
        (time(23, 59), "NIGHT_RECAP"),
    ],
)
def test_current_slot(local_time, expected) -> None:
    local = datetime.combine(datetime(2025, 3, 10).date(), local_time, tzinfo=LIMA)

    assert reminder_runner.current_slot(local) == expected


def test_morning_kickoff_lists_goals_and_pending_steps() -> None:
    stats = DailyStats(
        goals=(
            GoalDay(id=uuid4(), title="Correr 5K", pending_steps=2, done_today=0),
            GoalDay(id=uuid4(), title="Leer más", pending_steps=0, done_today=0),
        )
    )

    message = reminder_runner.build_morning_kickoff(stats)

    assert "Tienes 2 objetivos activos" in message
    assert "📌 Correr 5K (2 pasos)" in message
    assert "✅ Leer más" in message
    assert "Total: 2 pasos pendientes." in message


def test_morning_kickoff_without_goals() -> None:
    assert "No tienes objetivos activos" in reminder_runner.build_morning_kickoff(DailyStats())


def test_midday_and_afternoon_focus_on_idle_goals() -> None:
    stats = DailyStats(
        goals=(
            GoalDay(id=uuid4(), title="Correr 5K", pending_steps=1, done_today=1),
            GoalDay(id=uuid4(), title="Ahorrar", pending_steps=3, done_today=0),
        )
    )

    assert "Aún no avanzas en *Ahorrar*" in reminder_runner.build_midday_nudge(stats)
    assert "Tienes 3 pasos pendientes." in reminder_runner.build_midday_nudge(stats)
    assert "*Ahorrar* sigue sin avance" in reminder_runner.build_afternoon_push(stats)


def test_night_recap_counts_progress() -> None:
    stats = DailyStats(
        goals=(
            GoalDay(id=uuid4(), title="Correr 5K", pending_steps=0, done_today=2),
            GoalDay(id=uuid4(), title="Ahorrar", pending_steps=3, done_today=0),
        )
    )

    message = reminder_runner.build_night_recap(stats)

    assert "Avanzaste en 1 objetivo:" in message
    assert "✅ Correr 5K (2 avances)" in message
    assert "Total: 2 pasos completados" in message
    assert "• Ahorrar" in message
    assert "Hoy no registraste avances" in reminder_runner.build_night_recap(DailyStats())


def test_progress_helpers_use_local_calendar() -> None:
    goal = Experiment(
        title="Correr 5K",
        description="Entrenar",
        checkins=[
            ExperimentCheckin(
                step_title="Trotar",
                status="done",
                done_at=datetime(2025, 3, 8, 3, 0, tzinfo=timezone.utc),
            )
        ],
        actions=[
            ExperimentAction(
                channel="otro",
                action_type="otro",
                title="Comprar zapatillas",
                status="done",
                done_at=datetime(2025, 3, 11, 2, 0, tzinfo=timezone.utc),
            )
        ],
    )
    today = datetime(2025, 3, 10, 22, 0, tzinfo=LIMA).date()

    # 02:00 UTC on the 11th is still the 10th in Lima.
    assert reminder_runner.has_progress_today(goal, today, LIMA) is True
    assert reminder_runner.days_without_progress(goal, today, LIMA) == 0
    assert reminder_runner.days_without_progress(Experiment(title="x", description="y"), today, LIMA) == 999


def test_focus_goal_is_latest_active_goal(client):
    test_client, SessionLocal = client
    linked = _linked_user(test_client)

    with SessionLocal() as session:
        focus = reminder_runner.focus_goal(session, linked["user_id"])
        assert focus is not None
        assert str(focus.id) == linked["goal"]["id"]
        assert reminder_runner.focus_goal(session, uuid4()) is None


def test_slot_goes_out_once_per_day(client, outbox):
    test_client, SessionLocal = client
    linked = _linked_user(test_client)

    with SessionLocal() as session:
        first = reminder_runner.run_daily_reminders(session, now=MORNING)
        second = reminder_runner.run_daily_reminders(session, now=MORNING + timedelta(hours=1))
        midday = reminder_runner.run_daily_reminders(session, now=MORNING + timedelta(hours=4))
        session.commit()

    assert [result.status for result in first.results] == ["sent"]
    assert first.results[0].slot == "MORNING_KICKOFF"
    assert [result.status for result in second.results] == ["already_sent"]
    assert midday.results[0].slot == "MIDDAY_NUDGE"
    assert midday.sent == 1
    assert len(outbox) == 2
    assert outbox[0][0] == "+51987654321"
    assert "Buenos días" in outbox[0][1]
    assert linked["goal"]["title"] in outbox[0][1]
    logs = _daily_logs(SessionLocal, linked["user_id"])
    assert sorted(log.action_payload["slot"] for log in logs) == ["MIDDAY_NUDGE", "MORNING_KICKOFF"]


def test_failed_send_is_retried_on_next_run(client, monkeypatch):
    test_client, SessionLocal = client
    _linked_user(test_client)
    monkeypatch.setattr(
        "vicu.services.whatsapp_service.send_message",
        lambda to, body, **kwargs: NotificationResult(status="failed", reason="timeout"),
    )

    with SessionLocal() as session:
        first = reminder_runner.run_daily_reminders(session, now=MORNING)
        second = reminder_runner.run_daily_reminders(session, now=MORNING + timedelta(minutes=30))

    assert first.results[0].status == "failed"
    assert second.results[0].status == "failed"


def test_no_slot_before_morning(client, outbox):
    test_client, SessionLocal = client
    _linked_user(test_client)

    with SessionLocal() as session:
        # 06:00 in Lima.
        summary = reminder_runner.run_daily_reminders(session, now=datetime(2025, 3, 10, 11, 0, tzinfo=timezone.utc))

    assert [result.status for result in summary.results] == ["no_slot"]
    assert outbox == []


def test_route_forces_slot(client, outbox):
    test_client, SessionLocal = client
    linked = _linked_user(test_client)

    response = test_client.post("/kapso/run-daily-reminders", params={"slot": "NIGHT_RECAP"})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["forced_slot"] == "NIGHT_RECAP"
    assert body["processed"] == 1
    assert body["sent"] == 1
    assert body["results"][0]["user_id"] == str(linked["user_id"])
    assert "Resumen del día" in outbox[0][1]
    assert len(_daily_logs(SessionLocal, linked["user_id"])) == 1


def test_route_rejects_unknown_slot(client):
    test_client, _ = client

    response = test_client.post("/kapso/run-daily-reminders", params={"slot": "BRUNCH"})

    assert response.status_code == 422


def test_route_requires_cron_secret_when_configured(client, outbox, monkeypatch):
    test_client, _ = client
    monkeypatch.setattr(settings, "cron_secret", "s3cret")

    missing = test_client.post("/kapso/run-daily-reminders", params={"slot": "MORNING_KICKOFF"})
    wrong = test_client.post(
        "/kapso/run-daily-reminders", params={"slot": "MORNING_KICKOFF"}, headers={"Authorization": "Bearer nope"}
    )
    ok = test_client.post(
        "/kapso/run-daily-reminders", params={"slot": "MORNING_KICKOFF"}, headers={"Authorization": "Bearer s3cret"}
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 200


def test_preview_lists_schedule(client):
    test_client, _ = client

    body = test_client.get("/kapso/run-daily-reminders").json()

    assert body["timezone"] == "America/Lima"
    assert [item["slot"] for item in body["schedule"]] == [
        "MORNING_KICKOFF",
        "MIDDAY_NUDGE",
        "AFTERNOON_PUSH",
        "NIGHT_RECAP",
    ]
    assert body["schedule"][0]["starts_at"] == "08:00"
