"""Schemas for stage advice and stage transitions."""
from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel

from vicu.api.schemas.checkin import GamificationPayload, TransitionOfferPayload
from vicu.api.schemas.experiment import StageProgressPayload


class RecommendationRequest(BaseModel):
    force_new: bool = False


class StageRecommendationPayload(BaseModel):
    action: Optional[str]
    tag: str
    title: str
    summary: str
    reasons: List[str]
    suggested_next_focus: Optional[str]
    generated_at: Optional[str]
    for_stage: Optional[str]
    source: str


class RecommendationResponse(BaseModel):
    experiment_id: UUID
    recommendation: StageRecommendationPayload
    generated: bool
    history_count: int
    request_id: str


class StageTransitionOfferResponse(BaseModel):
    experiment_id: UUID
    current_stage: str
    stage_progress: StageProgressPayload
    transition: Optional[TransitionOfferPayload]
    request_id: str


class StageTransitionRequest(BaseModel):
    target_stage: Literal["queued", "building", "testing", "adjusting", "achieved", "paused", "discarded"]


class StageTransitionResponse(BaseModel):
    experiment_id: UUID
    previous_stage: str
    current_stage: str
    changed: bool
    steps_generated: int
    recommendation: Optional[StageRecommendationPayload]
    project_completed: Optional[GamificationPayload]
    request_id: str
