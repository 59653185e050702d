"""User gamification stats, timezone and activity routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from vicu.api.schemas.stats import (
    ActivityFeedResponse,
    ActivityItem,
    StreakPayload,
    TimezoneResponse,
    TimezoneUpdateRequest,
    UserStatsResponse,
    XpProgressPayload,
)
from vicu.core.identity import Anonymous, Authenticated, Identity, get_identity, identity_user_id
from vicu.db.deps import get_db
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import gamification, stats_service, user_service
from vicu.services.user_service import InvalidTimezone

router = APIRouter()


def _require_user(identity: Identity) -> Authenticated:
    if not isinstance(identity, Authenticated):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autenticado")
    return identity


@router.get("/user/stats", response_model=UserStatsResponse, tags=["stats"])
def get_user_stats(
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> UserStatsResponse:
    """Return normalized stats; slow fetches and anonymous callers get empty stats."""
    request_id = getattr(http_request.state, "request_id", None)
    user_id = identity_user_id(identity)
    today = user_service.local_now(db, user_id).date()

    with trace(
        "user.stats",
        metadata={"anonymous": user_id is None},
        user_id=str(user_id) if user_id else None,
        request_id=request_id,
    ):
        session_factory = sessionmaker(bind=db.get_bind(), autoflush=False, autocommit=False, future=True)
        stats = stats_service.fetch_stats_with_timeout(session_factory, identity, today=today)

    progress = gamification.xp_progress(stats.xp)
    streak = gamification.streak_status(stats.last_checkin_date, stats.streak_days, today)
    log_metric("user.stats.success", 1, metadata={"level": stats.level})
    return UserStatsResponse(
        anonymous=isinstance(identity, Anonymous),
        xp=stats.xp,
        level=stats.level,
        level_name=gamification.level_name(stats.level),
        xp_progress=XpProgressPayload(current=progress.current, needed=progress.needed, progress=progress.progress),
        streak_days=stats.streak_days,
        longest_streak=stats.longest_streak,
        streak=StreakPayload(is_active=streak.is_active, days_until_lost=streak.days_until_lost),
        last_checkin_date=stats.last_checkin_date,
        daily_checkins=stats.daily_checkins,
        daily_goal=stats.daily_goal,
        daily_goal_met=gamification.is_daily_goal_met(stats.daily_checkins, stats.daily_goal),
        total_checkins=stats.total_checkins,
        total_projects_completed=stats.total_projects_completed,
        badges=list(stats.badges),
    )


@router.put("/user/timezone", response_model=TimezoneResponse, tags=["stats"])
def update_user_timezone(
    payload: TimezoneUpdateRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> TimezoneResponse:
    """Store the IANA zone used for the user's day boundaries and badge hours."""
    user = _require_user(identity)
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("user.timezone.update", user_id=str(user.user_id), request_id=request_id):
            row = user_service.set_timezone(db, user.user_id, payload.timezone or "")
            db.commit()
    except InvalidTimezone as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception:
        db.rollback()
        raise

    log_metric("user.timezone.success", 1)
    return TimezoneResponse(timezone=row.timezone, request_id=request_id or "")


@router.get("/user/activity", response_model=ActivityFeedResponse, tags=["stats"])
def get_user_activity(
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> ActivityFeedResponse:
    user = _require_user(identity)
    request_id = getattr(http_request.state, "request_id", None)
    with trace("user.activity", user_id=str(user.user_id), request_id=request_id):
        entries = stats_service.recent_activity(db, user.user_id)

    log_metric("user.activity.success", 1, metadata={"count": len(entries)})
    return ActivityFeedResponse(
        activities=[
            ActivityItem(id=entry.id, type=entry.type, description=entry.description, date=entry.date, xp=entry.xp)
            for entry in entries
        ],
        request_id=request_id or "",
    )
