from __future__ import annotations

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vicu.core.config import settings
from vicu.db.base import Base
from vicu.db.deps import get_db
from vicu.db.models import Experiment, ExperimentCheckin, UserStats, XpEvent
from vicu.main import app


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


def _create_goal(test_client: TestClient, headers: dict | None = None) -> dict:
    response = test_client.post(
        "/experiments",
        json={"description": "Aprender a programar en Python este trimestre"},
        headers=headers or {},
    )
    assert response.status_code == 201, response.text
    return response.json()["experiment"]


def test_create_manual_step_defaults_description(client):
    test_client, _ = client
    goal = _create_goal(test_client)

    response = test_client.post(
        "/experiment-checkins",
        json={"experiment_id": goal["id"], "step_title": "  Leer el capítulo 1  "},
    )

    assert response.status_code == 201
    step = response.json()["step"]
    assert step["step_title"] == "Leer el capítulo 1"
    assert step["step_description"] == "Acción: Leer el capítulo 1"
    assert step["for_stage"] == "testing"
    assert step["status"] == "pending"
    assert step["source"] == "app"
    assert step["effort"] == "pequeno"


def test_create_manual_step_requires_title(client):
    test_client, _ = client
    goal = _create_goal(test_client)

    response = test_client.post("/experiment-checkins", json={"experiment_id": goal["id"], "step_title": " "})

    assert response.status_code == 400
    assert response.json()["detail"] == "El título del paso es requerido"


def test_create_manual_step_on_foreign_goal_is_forbidden(client):
    test_client, _ = client
    goal = _create_goal(test_client, {"X-User-Id": str(uuid4())})

    response = test_client.post(
        "/experiment-checkins",
        json={"experiment_id": goal["id"], "step_title": "Intruso"},
        headers={"X-User-Id": str(uuid4())},
    )

    assert response.status_code == 403


def test_completing_every_stage_step_offers_transition(client):
    test_client, _ = client
    goal = _create_goal(test_client)
    step_ids = [step["id"] for step in goal["steps"]]

    bodies = [test_client.post(f"/experiment-checkins/{step_id}/done").json() for step_id in step_ids]

    assert [body["stage_progress"]["completed"] for body in bodies] == [1, 2, 3]
    assert bodies[0]["transition"] is None
    assert bodies[1]["transition"] is None
    assert bodies[-1]["stage_progress"]["is_complete"] is True
    assert bodies[-1]["stage_progress"]["percent"] == 100
    assert bodies[-1]["transition"] == {
        "next_stage": "adjusting",
        "label": "Aceptar: Cambiar a Ajustando",
        "emoji": "🔄",
        "is_resume": False,
    }
    assert [body["goal_streak_days"] for body in bodies] == [1, 1, 1]
    assert all(body["gamification"] is None for body in bodies)


def test_completing_step_as_owner_awards_xp(client):
    test_client, SessionLocal = client
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    goal = _create_goal(test_client, headers)
    step_id = goal["steps"][0]["id"]

    response = test_client.post(f"/experiment-checkins/{step_id}/done", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["already_done"] is False
    assert body["step"]["status"] == "done"
    assert body["step"]["done_at"] is not None
    gamification = body["gamification"]
    assert gamification["xp_gained"] >= 10
    assert gamification["streak_days"] == 1
    assert gamification["daily_checkins"] == 1
    assert gamification["daily_goal_met"] is False

    with SessionLocal() as session:
        stats = session.get(UserStats, user_id)
        assert stats.total_checkins == 1
        assert stats.xp == gamification["xp"]
        events = session.query(XpEvent).filter(XpEvent.user_id == user_id).all()
        assert [event.reason for event in events] == ["checkin"]
        assert events[0].amount == gamification["xp_gained"]
        stored_goal = session.get(Experiment, UUID(goal["id"]))
        assert stored_goal.checkins_count == 1


def test_completing_done_step_is_noop(client):
    test_client, SessionLocal = client
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    goal = _create_goal(test_client, headers)
    step_id = goal["steps"][0]["id"]

    test_client.post(f"/experiment-checkins/{step_id}/done", headers=headers)
    response = test_client.post(f"/experiment-checkins/{step_id}/done", headers=headers)

    body = response.json()
    assert body["already_done"] is True
    assert body["gamification"] is None
    assert body["goal_streak_days"] == 1
    with SessionLocal() as session:
        assert session.get(UserStats, user_id).total_checkins == 1


def test_complete_unknown_step_returns_404(client):
    test_client, _ = client

    response = test_client.post(f"/experiment-checkins/{uuid4()}/done")

    assert response.status_code == 404
    assert response.json()["detail"] == "Paso no encontrado"


def test_regenerate_replaces_pending_steps_only(client):
    test_client, SessionLocal = client
    goal = _create_goal(test_client)
    done_id = goal["steps"][0]["id"]
    test_client.post(f"/experiment-checkins/{done_id}/done")

    response = test_client.post(f"/experiments/{goal['id']}/steps/regenerate")

    assert response.status_code == 200
    body = response.json()
    assert body["stage"] == "testing"
    assert len(body["steps"]) == 3
    with SessionLocal() as session:
        steps = session.query(ExperimentCheckin).filter(ExperimentCheckin.experiment_id == UUID(goal["id"])).all()
        assert len(steps) == 4
        assert sum(1 for step in steps if step.status == "done") == 1
        assert str(next(step.id for step in steps if step.status == "done")) == done_id
