"""Tests for the per-goal consecutive-day streak."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from vicu.db.models import Experiment
from vicu.services.step_service import update_goal_streak

NOW = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
LIMA = ZoneInfo("America/Lima")


def _goal(last_checkin_at=None, streak_days=0, checkins_count=0) -> Experiment:
    return Experiment(
        title="Correr 5K",
        description="Entrenar tres veces por semana",
        streak_days=streak_days,
        checkins_count=checkins_count,
        last_checkin_at=last_checkin_at,
    )


def test_first_checkin_starts_streak() -> None:
    goal = _goal()

    assert update_goal_streak(goal, NOW) == 1
    assert goal.last_checkin_at == NOW
    assert goal.checkins_count == 1


def test_same_day_checkin_keeps_streak() -> None:
    goal = _goal(last_checkin_at=NOW - timedelta(hours=2), streak_days=1, checkins_count=1)

    assert update_goal_streak(goal, NOW) == 1
    assert goal.streak_days == 1
    assert goal.checkins_count == 2


def test_same_day_checkin_never_inflates_longer_streak() -> None:
    goal = _goal(last_checkin_at=NOW - timedelta(hours=1), streak_days=4)

    for _ in range(3):
        update_goal_streak(goal, NOW)

    assert goal.streak_days == 4


def test_checkin_day_after_extends_streak() -> None:
    goal = _goal(last_checkin_at=NOW - timedelta(days=1), streak_days=2)

    assert update_goal_streak(goal, NOW) == 3


def test_gap_restarts_streak() -> None:
    goal = _goal(last_checkin_at=NOW - timedelta(days=3), streak_days=6)

    assert update_goal_streak(goal, NOW) == 1


def test_streak_day_boundary_follows_owner_timezone() -> None:
    last = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)
    now = datetime(2025, 3, 11, 1, 30, tzinfo=timezone.utc)

    lima_goal = _goal(last_checkin_at=last, streak_days=2)
    utc_goal = _goal(last_checkin_at=last, streak_days=2)

    # 09:00 and 20:30 on the same Lima day; consecutive days in UTC.
    assert update_goal_streak(lima_goal, now, LIMA) == 2
    assert update_goal_streak(utc_goal, now) == 3
