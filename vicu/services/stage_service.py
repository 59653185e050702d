"""Offer and accept stage transitions on a persisted goal."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from vicu.db.models import ActivityLog, Experiment
from vicu.services import goal_service, recommendation_service, stage_machine, stats_service
from vicu.services.gamification import CheckinOutcome
from vicu.services.stage_machine import StageTransition

logger = logging.getLogger(__name__)


class InvalidStageTransition(Exception):
    def __init__(self, current: str, target: str):
        super().__init__(f"{current} -> {target}")
        self.current = current
        self.target = target


@dataclass
class TransitionResult:
    goal: Experiment
    previous_stage: str
    changed: bool
    steps_generated: int = 0
    recommendation: Optional[recommendation_service.StageRecommendation] = None
    project_completed: Optional[CheckinOutcome] = None


def transition_offer(goal: Experiment) -> Optional[StageTransition]:
    progress = goal_service.stage_progress(goal)
    return stage_machine.resolve_transition(goal.status, progress, recommendation_service.current_action(goal))


def accept_transition(
    db: Session,
    goal: Experiment,
    target_stage: str,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> TransitionResult:
    """
    Move a goal to ``target_stage`` along a legal edge.

    Accepting the stage the goal is already in is a no-op. The move regenerates steps for
    non-terminal stages, refreshes the recommendation and, on ``achieved``, credits the
    owner's project-completed XP.
    """
    current = goal.status
    if target_stage == current:
        return TransitionResult(goal=goal, previous_stage=current, changed=False)
    if not stage_machine.is_valid_transition(current, target_stage):
        raise InvalidStageTransition(current, target_stage)

    # Imported here: step_service depends on this module for transition offers.
    from vicu.services import step_service

    now = now or datetime.now(timezone.utc)
    goal.status = target_stage
    db.flush()

    steps_generated = 0
    if not stage_machine.is_terminal(target_stage):
        steps_generated = len(step_service.regenerate_steps(db, goal, target_stage, request_id=request_id))

    recommendation, _ = recommendation_service.get_or_generate_recommendation(
        db, goal, force_new=True, now=now, request_id=request_id
    )

    project_completed = None
    if target_stage == "achieved" and goal.user_id is not None:
        project_completed = stats_service.apply_project_completed(db, goal.user_id, goal.id, now)

    db.add(
        ActivityLog(
            user_id=goal.user_id,
            experiment_id=goal.id,
            action_type="stage_transition",
            action_payload={"from": current, "to": target_stage, "steps_generated": steps_generated},
            reason=recommendation.action,
        )
    )
    db.flush()
    logger.info("Stage changed", extra={"experiment_id": str(goal.id), "from": current, "to": target_stage})
    return TransitionResult(
        goal=goal,
        previous_stage=current,
        changed=True,
        steps_generated=steps_generated,
        recommendation=recommendation,
        project_completed=project_completed,
    )
