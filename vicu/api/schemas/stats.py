"""Schemas for gamification stats."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel


class XpProgressPayload(BaseModel):
    current: int
    needed: int
    progress: float


class StreakPayload(BaseModel):
    is_active: bool
    days_until_lost: int


class UserStatsResponse(BaseModel):
    anonymous: bool
    xp: int
    level: int
    level_name: str
    xp_progress: XpProgressPayload
    streak_days: int
    longest_streak: int
    streak: StreakPayload
    last_checkin_date: Optional[date]
    daily_checkins: int
    daily_goal: int
    daily_goal_met: bool
    total_checkins: int
    total_projects_completed: int
    badges: List[Dict[str, Any]]


class TimezoneUpdateRequest(BaseModel):
    timezone: Optional[str] = None


class TimezoneResponse(BaseModel):
    timezone: str
    request_id: str


class ActivityItem(BaseModel):
    id: str
    type: Literal["checkin", "badge", "project_completed"]
    description: str
    date: datetime
    xp: Optional[int] = None


class ActivityFeedResponse(BaseModel):
    activities: List[ActivityItem]
    request_id: str
