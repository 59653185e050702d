"""Stage advice stored on a goal, with staleness detection and an append-only history."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from vicu.db.models import Experiment
from vicu.observability.metrics import log_metric
from vicu.services import advice_generator, goal_service, metrics_service
from vicu.services.advice_generator import AdviceContext, AdviceDraft
from vicu.services.llm_client import GenerationFailure
from vicu.services.recommendation import calculate_recommendation

logger = logging.getLogger(__name__)

TAG_TO_ACTION = {
    "keep_building": "seguir_construyendo",
    "ready_to_test": "probar",
    "keep_testing": "probar",
    "adjust": "ajustar",
    "achieved": "logrado",
    "pause": "pausar",
    "discard": "descartar",
    "no_data": None,
}

ACTION_TO_TAG = {
    "seguir_construyendo": "keep_building",
    "probar": "ready_to_test",
    "ajustar": "adjust",
    "logrado": "achieved",
    "pausar": "pause",
    "descartar": "discard",
}


class StageRecommendation(BaseModel):
    action: Optional[str] = None
    tag: str = "no_data"
    title: str
    summary: str = ""
    reasons: List[str] = Field(default_factory=list)
    suggested_next_focus: Optional[str] = None
    generated_at: Optional[str] = None
    for_stage: Optional[str] = None
    source: str = "llm"


def stored_recommendation(goal: Experiment) -> Optional[StageRecommendation]:
    if not goal.recommendation:
        return None
    return StageRecommendation.model_validate(goal.recommendation)


def is_fresh(recommendation: StageRecommendation, stage: str) -> bool:
    """A stored recommendation stays valid while its stage matches; untagged ones never go stale."""
    return recommendation.for_stage is None or recommendation.for_stage == stage


def current_action(goal: Experiment) -> Optional[str]:
    recommendation = stored_recommendation(goal)
    if recommendation is None or not is_fresh(recommendation, goal.status):
        return None
    return recommendation.action


def get_or_generate_recommendation(
    db: Session,
    goal: Experiment,
    force_new: bool = False,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> Tuple[StageRecommendation, bool]:
    """Return (recommendation, generated). Generation archives the previous one into the history."""
    existing = stored_recommendation(goal)
    if existing is not None and not force_new and is_fresh(existing, goal.status):
        return existing, False

    now = now or datetime.now(timezone.utc)
    metrics = metrics_service.fetch_experiment_metrics(db, goal.id)
    progress = goal_service.stage_progress(goal)
    context = AdviceContext(
        goal_title=goal.title,
        goal_description=goal.description,
        stage=goal.status,
        completed_steps=progress.completed,
        total_steps=progress.total,
        days_since_start=goal_service.days_since_start(goal, now),
        surface_type=goal.surface_type or "landing",
        self_result=goal.self_result,
        visits=metrics.visits,
        leads=metrics.leads,
        done_actions=metrics.done_actions,
        total_actions=metrics.total_actions,
    )

    try:
        draft = advice_generator.generate_stage_advice(context, request_id=request_id)
        recommendation = _from_draft(draft)
    except GenerationFailure as exc:
        logger.info("Stage advice generation failed (%s); using rule engine", exc)
        recommendation = _from_rules(goal, metrics, now)
    except Exception:
        logger.warning("Unexpected stage advice error; using rule engine", exc_info=True)
        recommendation = _from_rules(goal, metrics, now)

    recommendation.generated_at = now.isoformat()
    recommendation.for_stage = goal.status

    if goal.recommendation:
        goal.recommendation_history = list(goal.recommendation_history or []) + [dict(goal.recommendation)]
    goal.recommendation = recommendation.model_dump(mode="json")
    db.flush()
    return recommendation, True


def _from_draft(draft: AdviceDraft) -> StageRecommendation:
    return StageRecommendation(
        action=draft.action,
        tag=ACTION_TO_TAG[draft.action],
        title=draft.title,
        summary=draft.summary,
        reasons=draft.reasons,
        suggested_next_focus=draft.suggested_next_focus,
        source="llm",
    )


def _from_rules(goal: Experiment, metrics, now: datetime) -> StageRecommendation:
    log_metric("recommendation.fallback.used", 1, metadata={"stage": goal.status})
    rule = calculate_recommendation(
        metrics,
        surface_type=goal.surface_type or "landing",
        self_result=goal.self_result,
        rhythm=goal_service.rhythm_for_goal(goal),
        created_at=goal.created_at,
        now=now,
    )
    return StageRecommendation(
        action=TAG_TO_ACTION.get(rule.tag),
        tag=rule.tag,
        title=rule.title,
        summary=rule.text,
        reasons=rule.steps[:3] or [rule.text],
        suggested_next_focus=rule.steps[0] if rule.steps else None,
        source="rules",
    )
