"""Schemas for goals (experiments), their actions and insights."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

ExperimentType = Literal["clientes", "validacion", "equipo"]
SurfaceType = Literal["landing", "messages", "ritual"]
SelfResult = Literal["alto", "medio", "bajo"]


class ExperimentCreateRequest(BaseModel):
    description: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=200)
    experiment_type: Optional[ExperimentType] = None
    surface_type: Optional[SurfaceType] = None
    context: Optional[Literal["personal", "team", "business"]] = None
    target_audience: Optional[str] = None
    promise: Optional[str] = None
    desired_action: Optional[str] = None
    deadline: Optional[date] = None
    deadline_source: Optional[Literal["user", "ai_suggested"]] = None
    detected_category: Optional[str] = None
    first_steps: List[str] = Field(default_factory=list, max_length=5)


class StepPayload(BaseModel):
    id: UUID
    for_stage: Optional[str]
    status: str
    step_title: str
    step_description: Optional[str]
    effort: Optional[str]
    source: str
    done_at: Optional[datetime]


class ActionPayload(BaseModel):
    id: UUID
    channel: str
    action_type: str
    title: str
    content: str
    status: str
    suggested_order: int
    suggested_due_date: Optional[date]
    done_at: Optional[datetime]


class RhythmPayload(BaseModel):
    action_cadence: str
    metrics_cadence: str
    decision_cadence_days: int
    description: str


class StageProgressPayload(BaseModel):
    stage: str
    stage_label: str
    completed: int
    total: int
    percent: int
    is_complete: bool


class ReminderPayload(BaseModel):
    message: str
    urgency: Literal["low", "medium", "high"]


class ExperimentDetail(BaseModel):
    id: UUID
    user_id: Optional[UUID]
    title: str
    description: str
    experiment_type: str
    surface_type: str
    status: str
    deadline: Optional[date]
    deadline_source: Optional[str]
    self_result: Optional[str]
    streak_days: int
    checkins_count: int
    last_checkin_at: Optional[datetime]
    created_at: Optional[datetime]
    rhythm: RhythmPayload
    suggested_checkin_cadence: str
    next_action_reminder: ReminderPayload
    stage_progress: StageProgressPayload
    steps: List[StepPayload]
    actions: List[ActionPayload]
    recommendation: Optional[Dict[str, Any]] = None


class ExperimentCreateResponse(BaseModel):
    experiment: ExperimentDetail
    steps_fallback_used: bool
    request_id: str


class DeadlineUpdateRequest(BaseModel):
    deadline: Optional[date] = None


class SelfResultRequest(BaseModel):
    self_result: Optional[SelfResult] = None


class RecommendationPayload(BaseModel):
    tag: str
    tag_label: str
    title: str
    text: str
    color: str
    steps: List[str]


class ProgressPayload(BaseModel):
    done: int
    total: int
    ratio: float
    message: str


class MetricsPayload(BaseModel):
    visits: int
    leads: int
    total_actions: int
    done_actions: int


class InsightsResponse(BaseModel):
    experiment_id: UUID
    recommendation: RecommendationPayload
    progress: ProgressPayload
    metrics: MetricsPayload
    days_since_start: int
    request_id: str


class AttackPlanResponse(BaseModel):
    experiment_id: UUID
    actions: List[ActionPayload]
    fallback_used: bool
    request_id: str


class MoreActionsRequest(BaseModel):
    channel: str = Field(..., min_length=1, max_length=80)


class ActionDoneResponse(BaseModel):
    action: ActionPayload
    request_id: str


class ChatMessagePayload(BaseModel):
    role: Literal["vicu", "user"]
    content: str = Field(..., min_length=1)


class AnalyzeChatRequest(BaseModel):
    messages: List[ChatMessagePayload] = Field(default_factory=list, max_length=60)


class ChatAnalysisPayload(BaseModel):
    summary: str
    generated_title: str
    context: str
    experiment_type: str
    surface_type: str
    target_audience: str
    main_pain: str
    promise: str
    desired_action: str
    success_metric: str
    suggested_deadline: Optional[str]
    deadline_date: Optional[date]
    needs_clarification: bool
    clarifying_questions: List[str]
    confidence: float
    context_bullets: List[str]
    first_steps: List[str]
    detected_category: str
    detected_subject: str


class AnalyzeChatResponse(BaseModel):
    analysis: ChatAnalysisPayload
    is_complete: bool
    goal_draft: ExperimentCreateRequest
    fallback_used: bool
    request_id: str
