"""Schemas for steps (check-ins) and their completion."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel

from vicu.api.schemas.experiment import StageProgressPayload, StepPayload


class CheckinCreateRequest(BaseModel):
    experiment_id: UUID
    step_title: Optional[str] = None
    step_description: Optional[str] = None
    effort: Optional[Literal["muy_pequeno", "pequeno", "medio"]] = None
    for_stage: Optional[Literal["queued", "building", "testing", "adjusting", "paused"]] = None


class CheckinCreateResponse(BaseModel):
    step: StepPayload
    request_id: str


class GamificationPayload(BaseModel):
    xp_gained: int
    xp: int
    level: int
    level_name: str
    level_up: bool
    streak_days: int
    daily_checkins: int
    daily_goal: int
    daily_goal_met: bool
    new_badges: List[Dict[str, Any]]


class TransitionOfferPayload(BaseModel):
    next_stage: str
    label: str
    emoji: str
    is_resume: bool


class CheckinDoneResponse(BaseModel):
    step: StepPayload
    experiment_id: UUID
    goal_streak_days: int
    stage_progress: StageProgressPayload
    gamification: Optional[GamificationPayload]
    transition: Optional[TransitionOfferPayload]
    already_done: bool
    request_id: str


class StepsRegenerateResponse(BaseModel):
    experiment_id: UUID
    stage: str
    steps: List[StepPayload]
    request_id: str
