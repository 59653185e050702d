"""XP, level, streak and badge rules applied to a user's activity counters."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

CHECKIN_XP = 10
STREAK_BONUS_PER_DAY = 5
STREAK_BONUS_CAP = 50
DAILY_GOAL_XP = 25
PROJECT_COMPLETED_XP = 100
BADGE_XP = 50
DEFAULT_DAILY_GOAL = 2

LEVEL_THRESHOLDS: Tuple[int, ...] = (
    0, 50, 150, 300, 500, 750, 1050, 1400, 1800, 2250,
    2750, 3300, 3900, 4550, 5250, 6000, 6800, 7650, 8550, 9500,
)
MAX_LEVEL = len(LEVEL_THRESHOLDS)

LEVEL_NAMES: Tuple[Tuple[int, str], ...] = (
    (2, "Novato"),
    (4, "Aprendiz"),
    (6, "Explorador"),
    (8, "Practicante"),
    (10, "Experto"),
    (12, "Veterano"),
    (14, "Maestro"),
    (16, "Leyenda"),
    (18, "Campeón"),
)
TOP_LEVEL_NAME = "Élite"


@dataclass(frozen=True)
class StatsSnapshot:
    xp: int = 0
    level: int = 1
    streak_days: int = 0
    longest_streak: int = 0
    last_checkin_date: Optional[date] = None
    daily_checkins: int = 0
    daily_goal: int = DEFAULT_DAILY_GOAL
    total_checkins: int = 0
    total_projects_completed: int = 0
    badges: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def badge_ids(self) -> frozenset:
        return frozenset(badge.get("id") for badge in self.badges)


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    description: str
    icon: str
    unlocked: Callable[[StatsSnapshot, Optional[int]], bool]

    def to_dict(self, unlocked_at: Optional[datetime] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
        }
        if unlocked_at is not None:
            payload["unlocked_at"] = unlocked_at.isoformat()
        return payload


BADGES: Tuple[BadgeDefinition, ...] = (
    BadgeDefinition("streak_3", "En racha", "3 días seguidos avanzando", "🔥", lambda s, h: s.streak_days >= 3),
    BadgeDefinition("streak_7", "Semana perfecta", "7 días seguidos avanzando", "⭐", lambda s, h: s.streak_days >= 7),
    BadgeDefinition("streak_14", "Imparable", "14 días seguidos avanzando", "💪", lambda s, h: s.streak_days >= 14),
    BadgeDefinition("streak_30", "Máquina", "30 días seguidos avanzando", "🏆", lambda s, h: s.streak_days >= 30),
    BadgeDefinition("checkins_10", "Primeros pasos", "10 avances registrados", "👣", lambda s, h: s.total_checkins >= 10),
    BadgeDefinition("checkins_50", "Constante", "50 avances registrados", "📈", lambda s, h: s.total_checkins >= 50),
    BadgeDefinition("checkins_100", "Centenario", "100 avances registrados", "💯", lambda s, h: s.total_checkins >= 100),
    BadgeDefinition(
        "first_project", "Primer logro", "Completar tu primer proyecto", "🎯",
        lambda s, h: s.total_projects_completed >= 1,
    ),
    BadgeDefinition(
        "projects_5", "Ejecutor", "Completar 5 proyectos", "🚀",
        lambda s, h: s.total_projects_completed >= 5,
    ),
    BadgeDefinition("level_5", "Aprendiz", "Alcanzar nivel 5", "🌱", lambda s, h: s.level >= 5),
    BadgeDefinition("level_10", "Experto", "Alcanzar nivel 10", "🌟", lambda s, h: s.level >= 10),
    BadgeDefinition(
        "early_bird", "Madrugador", "Hacer check-in antes de las 9am", "🌅",
        lambda s, h: h is not None and h < 9,
    ),
    BadgeDefinition(
        "night_owl", "Noctámbulo", "Hacer check-in después de las 10pm", "🦉",
        lambda s, h: h is not None and h >= 22,
    ),
)
BADGES_BY_ID = {badge.id: badge for badge in BADGES}


@dataclass(frozen=True)
class LevelProgress:
    current: int
    needed: int
    progress: float


@dataclass(frozen=True)
class StreakStatus:
    is_active: bool
    days_until_lost: int


@dataclass(frozen=True)
class CheckinOutcome:
    stats: StatsSnapshot
    xp_gained: int
    new_badges: List[Dict[str, Any]]
    level_up: bool
    daily_goal_met: bool


def calculate_level(xp: int) -> int:
    """Highest 1-indexed level whose threshold is at or below xp."""
    level = 1
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if xp >= threshold:
            level = index + 1
        else:
            break
    return level


def xp_progress(xp: int) -> LevelProgress:
    level = calculate_level(xp)
    current_threshold = LEVEL_THRESHOLDS[level - 1]
    if level >= MAX_LEVEL:
        return LevelProgress(current=xp - current_threshold, needed=0, progress=100.0)
    next_threshold = LEVEL_THRESHOLDS[level]
    current = xp - current_threshold
    needed = next_threshold - current_threshold
    return LevelProgress(current=current, needed=needed, progress=min(100.0, current / needed * 100))


def level_name(level: int) -> str:
    for ceiling, name in LEVEL_NAMES:
        if level <= ceiling:
            return name
    return TOP_LEVEL_NAME


def calculate_checkin_xp(streak_days: int) -> int:
    xp = CHECKIN_XP
    if streak_days > 1:
        xp += min(streak_days * STREAK_BONUS_PER_DAY, STREAK_BONUS_CAP)
    return xp


def is_daily_goal_met(daily_checkins: int, daily_goal: int) -> bool:
    return daily_checkins >= daily_goal


def streak_status(last_checkin_date: Optional[date], streak_days: int, today: Optional[date] = None) -> StreakStatus:
    if last_checkin_date is None:
        return StreakStatus(is_active=False, days_until_lost=0)
    today = today or date.today()
    diff = (today - last_checkin_date).days
    if diff == 0:
        return StreakStatus(is_active=True, days_until_lost=1)
    if diff == 1:
        return StreakStatus(is_active=True, days_until_lost=0)
    return StreakStatus(is_active=False, days_until_lost=0)


def normalize_for_today(stats: StatsSnapshot, today: Optional[date] = None) -> StatsSnapshot:
    """Zero the per-day counter when the stored check-in date is not today."""
    today = today or date.today()
    if stats.last_checkin_date != today and stats.daily_checkins:
        return replace(stats, daily_checkins=0)
    return stats


def check_badge_unlocks(
    stats: StatsSnapshot,
    checkin_hour: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Badges whose predicate holds and which are not unlocked yet."""
    owned = stats.badge_ids
    unlocked_at = now or datetime.now()
    return [
        badge.to_dict(unlocked_at)
        for badge in BADGES
        if badge.id not in owned and badge.unlocked(stats, checkin_hour)
    ]


def with_badges(stats: StatsSnapshot, new_badges: List[Dict[str, Any]]) -> StatsSnapshot:
    owned = stats.badge_ids
    merged = list(stats.badges)
    for badge in new_badges:
        if badge["id"] not in owned:
            merged.append(badge)
            owned = owned | {badge["id"]}
    return replace(stats, badges=tuple(merged))


def record_checkin(stats: StatsSnapshot, now: Optional[datetime] = None) -> CheckinOutcome:
    """Apply one check-in to a stats snapshot and report what it earned."""
    now = now or datetime.now()
    today = now.date()
    yesterday = today - timedelta(days=1)
    is_new_day = stats.last_checkin_date != today

    new_streak = stats.streak_days
    if is_new_day:
        if stats.last_checkin_date == yesterday:
            new_streak = stats.streak_days + 1
        elif stats.last_checkin_date is None or stats.last_checkin_date < yesterday:
            new_streak = 1

    xp_gained = calculate_checkin_xp(new_streak)

    previous_daily = 0 if is_new_day else stats.daily_checkins
    new_daily = previous_daily + 1
    was_goal_met = is_daily_goal_met(previous_daily, stats.daily_goal)
    goal_met_now = is_daily_goal_met(new_daily, stats.daily_goal)
    if goal_met_now and not was_goal_met:
        xp_gained += DAILY_GOAL_XP

    new_xp = stats.xp + xp_gained
    updated = replace(
        stats,
        xp=new_xp,
        level=calculate_level(new_xp),
        streak_days=new_streak,
        longest_streak=max(stats.longest_streak, new_streak),
        last_checkin_date=today,
        daily_checkins=new_daily,
        total_checkins=stats.total_checkins + 1,
    )

    updated, new_badges, badge_xp = _award_badges(updated, now.hour, now)
    xp_gained += badge_xp

    return CheckinOutcome(
        stats=updated,
        xp_gained=xp_gained,
        new_badges=new_badges,
        level_up=updated.level > stats.level,
        daily_goal_met=goal_met_now,
    )


def record_project_completed(stats: StatsSnapshot, now: Optional[datetime] = None) -> CheckinOutcome:
    now = now or datetime.now()
    new_xp = stats.xp + PROJECT_COMPLETED_XP
    updated = replace(
        stats,
        xp=new_xp,
        level=calculate_level(new_xp),
        total_projects_completed=stats.total_projects_completed + 1,
    )
    updated, new_badges, badge_xp = _award_badges(updated, None, now)
    return CheckinOutcome(
        stats=updated,
        xp_gained=PROJECT_COMPLETED_XP + badge_xp,
        new_badges=new_badges,
        level_up=updated.level > stats.level,
        daily_goal_met=is_daily_goal_met(updated.daily_checkins, updated.daily_goal),
    )


def _award_badges(
    stats: StatsSnapshot,
    checkin_hour: Optional[int],
    now: datetime,
) -> Tuple[StatsSnapshot, List[Dict[str, Any]], int]:
    new_badges = check_badge_unlocks(stats, checkin_hour, now)
    if not new_badges:
        return stats, [], 0
    badge_xp = BADGE_XP * len(new_badges)
    new_xp = stats.xp + badge_xp
    updated = replace(with_badges(stats, new_badges), xp=new_xp, level=calculate_level(new_xp))
    return updated, new_badges, badge_xp
