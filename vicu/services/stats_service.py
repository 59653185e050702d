"""Persistence of gamification stats and the XP audit trail."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from vicu.core.config import settings
from vicu.core.identity import Authenticated, Identity
from vicu.db.models import Experiment, ExperimentCheckin, UserStats, XpEvent
from vicu.services import gamification
from vicu.services.gamification import CheckinOutcome, StatsSnapshot
from vicu.services.user_service import get_or_create_user, local_now

logger = logging.getLogger(__name__)

ACTIVITY_WINDOW_DAYS = 7
ACTIVITY_STEP_LIMIT = 20
ACTIVITY_LIMIT = 10


def snapshot_from_row(row: Optional[UserStats]) -> StatsSnapshot:
    if row is None:
        return StatsSnapshot()
    return StatsSnapshot(
        xp=row.xp or 0,
        level=row.level or 1,
        streak_days=row.streak_days or 0,
        longest_streak=row.longest_streak or 0,
        last_checkin_date=row.last_checkin_date,
        daily_checkins=row.daily_checkins or 0,
        daily_goal=row.daily_goal or gamification.DEFAULT_DAILY_GOAL,
        total_checkins=row.total_checkins or 0,
        total_projects_completed=row.total_projects_completed or 0,
        badges=tuple(row.badges or ()),
    )


def load_stats(db: Session, user_id: UUID, today: Optional[date] = None) -> StatsSnapshot:
    """Read a user's stats with the daily counter normalized to today."""
    row = db.get(UserStats, user_id)
    return gamification.normalize_for_today(snapshot_from_row(row), today)


def _save_snapshot(db: Session, user_id: UUID, snapshot: StatsSnapshot) -> UserStats:
    row = db.get(UserStats, user_id)
    if row is None:
        get_or_create_user(db, user_id)
        row = UserStats(user_id=user_id)
        db.add(row)
    row.xp = snapshot.xp
    row.level = snapshot.level
    row.streak_days = snapshot.streak_days
    row.longest_streak = snapshot.longest_streak
    row.last_checkin_date = snapshot.last_checkin_date
    row.daily_checkins = snapshot.daily_checkins
    row.daily_goal = snapshot.daily_goal
    row.total_checkins = snapshot.total_checkins
    row.total_projects_completed = snapshot.total_projects_completed
    row.badges = [dict(badge) for badge in snapshot.badges]
    return row


def apply_checkin(
    db: Session,
    user_id: UUID,
    experiment_id: Optional[UUID],
    now: Optional[datetime] = None,
) -> CheckinOutcome:
    """
    Run the check-in rules on the stored row and append the XP event. Caller commits.

    Day boundaries and the early/late badges follow the user's own clock.
    """
    now = local_now(db, user_id, now)
    current = snapshot_from_row(db.get(UserStats, user_id))
    outcome = gamification.record_checkin(current, now)
    _save_snapshot(db, user_id, outcome.stats)
    db.add(XpEvent(user_id=user_id, experiment_id=experiment_id, amount=outcome.xp_gained, reason="checkin"))
    db.flush()
    logger.info(
        "Check-in recorded",
        extra={"xp_gained": outcome.xp_gained, "level": outcome.stats.level, "badges": len(outcome.new_badges)},
    )
    return outcome


def apply_project_completed(
    db: Session,
    user_id: UUID,
    experiment_id: Optional[UUID],
    now: Optional[datetime] = None,
) -> CheckinOutcome:
    now = local_now(db, user_id, now)
    current = snapshot_from_row(db.get(UserStats, user_id))
    outcome = gamification.record_project_completed(current, now)
    _save_snapshot(db, user_id, outcome.stats)
    db.add(
        XpEvent(user_id=user_id, experiment_id=experiment_id, amount=outcome.xp_gained, reason="project_completed")
    )
    db.flush()
    return outcome


def fetch_stats_with_timeout(
    session_factory: Callable[[], Session],
    identity: Identity,
    today: Optional[date] = None,
    timeout_seconds: Optional[float] = None,
) -> StatsSnapshot:
    """
    Load stats on a worker thread with its own session.

    Anonymous callers get empty stats without touching the database. When the fetch
    does not finish within the timeout, empty stats are returned instead.
    """
    if not isinstance(identity, Authenticated):
        return StatsSnapshot()

    timeout = settings.stats_fetch_timeout_seconds if timeout_seconds is None else timeout_seconds

    def _load() -> StatsSnapshot:
        session = session_factory()
        try:
            return load_stats(session, identity.user_id, today)
        finally:
            session.close()

    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(_load)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning("Stats fetch exceeded %.1fs; returning empty stats", timeout)
        return StatsSnapshot()
    finally:
        executor.shutdown(wait=False)


@dataclass(frozen=True)
class ActivityEntry:
    id: str
    type: str
    description: str
    date: datetime
    xp: Optional[int] = None


def recent_activity(db: Session, user_id: UUID, now: Optional[datetime] = None) -> List[ActivityEntry]:
    """Latest check-ins (last week), unlocked badges and completed projects, newest first."""
    now = now or datetime.now(timezone.utc)
    entries: List[ActivityEntry] = []

    steps = db.execute(
        select(ExperimentCheckin, Experiment.title)
        .join(Experiment, ExperimentCheckin.experiment_id == Experiment.id)
        .where(
            Experiment.user_id == user_id,
            ExperimentCheckin.status == "done",
            ExperimentCheckin.done_at >= now - timedelta(days=ACTIVITY_WINDOW_DAYS),
        )
        .order_by(ExperimentCheckin.done_at.desc())
        .limit(ACTIVITY_STEP_LIMIT)
    ).all()
    for step, title in steps:
        entries.append(
            ActivityEntry(
                id=f"checkin-{step.id}",
                type="checkin",
                description=f'Avanzaste en "{title}"',
                date=step.done_at,
                xp=gamification.CHECKIN_XP,
            )
        )

    row = db.get(UserStats, user_id)
    for badge in (row.badges if row is not None else None) or []:
        unlocked_at = badge.get("unlocked_at")
        if not unlocked_at:
            continue
        entries.append(
            ActivityEntry(
                id=f"badge-{badge.get('id')}",
                type="badge",
                description=f"Desbloqueaste el badge {badge.get('name', '')}",
                date=datetime.fromisoformat(unlocked_at),
                xp=gamification.BADGE_XP,
            )
        )

    completions = db.execute(
        select(XpEvent, Experiment.title)
        .outerjoin(Experiment, XpEvent.experiment_id == Experiment.id)
        .where(XpEvent.user_id == user_id, XpEvent.reason == "project_completed")
        .order_by(XpEvent.created_at.desc())
        .limit(ACTIVITY_LIMIT)
    ).all()
    for event, title in completions:
        entries.append(
            ActivityEntry(
                id=f"xp-{event.id}",
                type="project_completed",
                description=f'¡Lograste "{title}"!' if title else "¡Completaste un proyecto!",
                date=event.created_at,
                xp=event.amount,
            )
        )

    entries.sort(key=lambda entry: _as_aware(entry.date), reverse=True)
    return entries[:ACTIVITY_LIMIT]


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
