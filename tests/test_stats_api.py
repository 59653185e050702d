from __future__ import annotations

import time
from datetime import date, timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vicu.core.config import settings
from vicu.db.base import Base
from vicu.db.deps import get_db
from vicu.db.models import User, UserStats
from vicu.main import app
from vicu.services import stats_service


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


def test_anonymous_caller_gets_empty_stats(client):
    test_client, _ = client

    response = test_client.get("/user/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["anonymous"] is True
    assert body["xp"] == 0
    assert body["level"] == 1
    assert body["level_name"] == "Novato"
    assert body["streak"] == {"is_active": False, "days_until_lost": 0}
    assert body["badges"] == []


def test_stats_reflect_completed_step(client):
    test_client, _ = client
    user_id = uuid4()
    headers = {"X-User-Id": str(user_id)}
    goal = test_client.post("/experiments", json={"description": "Meditar cada mañana"}, headers=headers).json()[
        "experiment"
    ]
    done = test_client.post(f"/experiment-checkins/{goal['steps'][0]['id']}/done", headers=headers).json()

    response = test_client.get("/user/stats", headers=headers)

    body = response.json()
    assert body["anonymous"] is False
    assert body["xp"] == done["gamification"]["xp"]
    assert body["total_checkins"] == 1
    assert body["daily_checkins"] == 1
    assert body["streak_days"] == 1
    assert body["streak"]["is_active"] is True


def test_stale_daily_counter_is_reset(client):
    test_client, SessionLocal = client
    user_id = uuid4()
    with SessionLocal() as session:
        session.add(User(id=user_id))
        session.add(
            UserStats(
                user_id=user_id,
                xp=120,
                level=2,
                streak_days=4,
                longest_streak=6,
                last_checkin_date=date.today() - timedelta(days=3),
                daily_checkins=2,
                daily_goal=2,
                total_checkins=30,
                total_projects_completed=0,
                badges=[],
            )
        )
        session.commit()

    body = test_client.get("/user/stats", headers={"X-User-Id": str(user_id)}).json()

    assert body["xp"] == 120
    assert body["daily_checkins"] == 0
    assert body["daily_goal_met"] is False
    assert body["longest_streak"] == 6
    assert body["streak"]["is_active"] is False


def test_slow_stats_fetch_returns_empty_stats(client, monkeypatch):
    test_client, _ = client
    monkeypatch.setattr(settings, "stats_fetch_timeout_seconds", 0.05)

    def slow_load(db, user_id, today=None):
        time.sleep(0.5)
        raise AssertionError("should have timed out")

    monkeypatch.setattr(stats_service, "load_stats", slow_load)

    response = test_client.get("/user/stats", headers={"X-User-Id": str(uuid4())})

    assert response.status_code == 200
    assert response.json()["xp"] == 0
    assert response.json()["anonymous"] is False
