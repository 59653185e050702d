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
from vicu.db.models import ActivityLog, Experiment, XpEvent
from vicu.main import app
from vicu.services import llm_client


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
        json={"description": "Conseguir clientes para mi estudio de diseño"},
        headers=headers or {},
    )
    assert response.status_code == 201, response.text
    return response.json()["experiment"]


def test_recommendation_falls_back_to_rules_and_is_reused(client):
    test_client, _ = client
    goal = _create_goal(test_client)

    first = test_client.post(f"/experiments/{goal['id']}/recommendation")
    assert first.status_code == 200
    body = first.json()
    assert body["generated"] is True
    assert body["history_count"] == 0
    recommendation = body["recommendation"]
    assert recommendation["source"] == "rules"
    assert recommendation["tag"] == "keep_building"
    assert recommendation["action"] == "seguir_construyendo"
    assert recommendation["for_stage"] == "testing"
    assert 1 <= len(recommendation["reasons"]) <= 3
    assert recommendation["summary"] not in recommendation["reasons"]
    assert recommendation["reasons"][0] == recommendation["suggested_next_focus"]

    second = test_client.post(f"/experiments/{goal['id']}/recommendation", json={"force_new": False})
    assert second.json()["generated"] is False
    assert second.json()["recommendation"]["generated_at"] == recommendation["generated_at"]

    forced = test_client.post(f"/experiments/{goal['id']}/recommendation", json={"force_new": True})
    assert forced.json()["generated"] is True
    assert forced.json()["history_count"] == 1


def test_recommendation_uses_generated_advice(client, monkeypatch):
    test_client, _ = client
    goal = _create_goal(test_client)
    monkeypatch.setattr(settings, "openai_api_key", "test-key")

    def fake_complete_json(system_prompt, user_prompt, **kwargs):
        return (
            '{"action": "ajustar", "title": "Cambia el mensaje", "summary": "Pocas respuestas.",'
            ' "reasons": ["Nadie respondió"], "suggested_next_focus": "Reescribe el primer mensaje"}'
        )

    monkeypatch.setattr(llm_client, "complete_json", fake_complete_json)

    response = test_client.post(f"/experiments/{goal['id']}/recommendation")

    recommendation = response.json()["recommendation"]
    assert recommendation["source"] == "llm"
    assert recommendation["action"] == "ajustar"
    assert recommendation["tag"] == "adjust"


def test_transition_offer_waits_for_completed_stage(client):
    test_client, _ = client
    goal = _create_goal(test_client)

    pending = test_client.get(f"/experiments/{goal['id']}/stage-transition").json()
    assert pending["current_stage"] == "testing"
    assert pending["transition"] is None

    for step in goal["steps"]:
        test_client.post(f"/experiment-checkins/{step['id']}/done")

    ready = test_client.get(f"/experiments/{goal['id']}/stage-transition").json()
    assert ready["stage_progress"]["is_complete"] is True
    assert ready["transition"]["next_stage"] == "adjusting"


def test_illegal_transition_is_rejected(client):
    test_client, SessionLocal = client
    goal = _create_goal(test_client)

    response = test_client.post(f"/experiments/{goal['id']}/stage-transition", json={"target_stage": "building"})

    assert response.status_code == 409
    assert response.json()["detail"] == "Transición no permitida: testing → building"
    with SessionLocal() as session:
        assert session.get(Experiment, UUID(goal["id"])).status == "testing"


def test_transition_to_current_stage_is_noop(client):
    test_client, _ = client
    goal = _create_goal(test_client)

    response = test_client.post(f"/experiments/{goal['id']}/stage-transition", json={"target_stage": "testing"})

    body = response.json()
    assert body["changed"] is False
    assert body["steps_generated"] == 0
    assert body["recommendation"] is None


def test_transition_generates_steps_and_logs_activity(client):
    test_client, SessionLocal = client
    goal = _create_goal(test_client)

    response = test_client.post(f"/experiments/{goal['id']}/stage-transition", json={"target_stage": "adjusting"})

    assert response.status_code == 200
    body = response.json()
    assert body["previous_stage"] == "testing"
    assert body["current_stage"] == "adjusting"
    assert body["changed"] is True
    assert body["steps_generated"] == 3
    assert body["recommendation"]["for_stage"] == "adjusting"
    assert body["project_completed"] is None

    detail = test_client.get(f"/experiments/{goal['id']}").json()
    assert detail["stage_progress"]["total"] == 3
    assert detail["stage_progress"]["completed"] == 0
    with SessionLocal() as session:
        logs = session.query(ActivityLog).filter(ActivityLog.experiment_id == UUID(goal["id"])).all()
        assert len(logs) == 1
        assert logs[0].action_type == "stage_transition"
        assert logs[0].action_payload == {"from": "testing", "to": "adjusting", "steps_generated": 3}


def test_achieving_goal_credits_project_completion(client):
    test_client, SessionLocal = client
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    goal = _create_goal(test_client, headers)

    response = test_client.post(
        f"/experiments/{goal['id']}/stage-transition",
        json={"target_stage": "achieved"},
        headers=headers,
    )

    body = response.json()
    assert body["current_stage"] == "achieved"
    assert body["steps_generated"] == 0
    assert body["project_completed"]["xp_gained"] == 150
    assert [badge["id"] for badge in body["project_completed"]["new_badges"]] == ["first_project"]
    with SessionLocal() as session:
        reasons = [event.reason for event in session.query(XpEvent).filter(XpEvent.user_id == user_id)]
        assert reasons == ["project_completed"]

    final = test_client.post(
        f"/experiments/{goal['id']}/stage-transition",
        json={"target_stage": "paused"},
        headers=headers,
    )
    assert final.status_code == 409
