"""Step creation, regeneration and the shared step-completion path."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from sqlalchemy.orm import Session

from vicu.core.identity import Authenticated, Identity
from vicu.db.models import Experiment, ExperimentCheckin
from vicu.services import goal_service, plan_generator, stage_service, stats_service, user_service
from vicu.services.gamification import CheckinOutcome
from vicu.services.stage_machine import StageProgress, StageTransition

logger = logging.getLogger(__name__)


@dataclass
class StepCompletion:
    step: ExperimentCheckin
    goal: Experiment
    progress: StageProgress
    gamification: Optional[CheckinOutcome]
    transition: Optional[StageTransition]
    already_done: bool = False


def update_goal_streak(goal: Experiment, now: datetime, tz: Optional[tzinfo] = None) -> int:
    """
    Consecutive-day streak on the goal, judged on the owner's calendar.

    A check-in the day after the last one extends the streak, another one on the same
    day leaves it as is, and any longer gap restarts it at 1.
    """
    tz = tz or timezone.utc
    today = now.astimezone(tz).date()
    new_streak = 1
    if goal.last_checkin_at is not None:
        last_day = goal.last_checkin_at.astimezone(tz).date()
        if last_day == today:
            new_streak = max(goal.streak_days or 0, 1)
        elif last_day == today - timedelta(days=1):
            new_streak = (goal.streak_days or 0) + 1
    goal.streak_days = new_streak
    goal.last_checkin_at = now
    goal.checkins_count = (goal.checkins_count or 0) + 1
    return new_streak


def complete_step(
    db: Session,
    step: ExperimentCheckin,
    identity: Identity,
    now: Optional[datetime] = None,
) -> StepCompletion:
    """
    Mark a step done and roll the effects forward.

    The goal's streak counters always move. XP, badges and the audit row are only
    recorded for authenticated callers. Completing an already-done step changes nothing.
    """
    now = now or datetime.now(timezone.utc)
    goal = step.experiment

    if step.status == "done":
        return StepCompletion(
            step=step,
            goal=goal,
            progress=goal_service.stage_progress(goal),
            gamification=None,
            transition=stage_service.transition_offer(goal),
            already_done=True,
        )

    step.status = "done"
    step.done_at = now
    update_goal_streak(goal, now, user_service.user_timezone(db, goal.user_id))

    outcome = None
    if isinstance(identity, Authenticated):
        outcome = stats_service.apply_checkin(db, identity.user_id, goal.id, now)
    db.flush()

    progress = goal_service.stage_progress(goal)
    transition = stage_service.transition_offer(goal)
    logger.info(
        "Step completed",
        extra={
            "experiment_id": str(goal.id),
            "stage": goal.status,
            "completed": progress.completed,
            "total": progress.total,
        },
    )
    return StepCompletion(step=step, goal=goal, progress=progress, gamification=outcome, transition=transition)


def create_manual_step(
    db: Session,
    goal: Experiment,
    step_title: str,
    step_description: Optional[str] = None,
    effort: Optional[str] = None,
    for_stage: Optional[str] = None,
    source: str = "app",
) -> ExperimentCheckin:
    title = step_title.strip()
    step = ExperimentCheckin(
        experiment_id=goal.id,
        user_id=goal.user_id,
        for_stage=for_stage or goal.status,
        status="pending",
        step_title=title,
        step_description=(step_description or "").strip() or f"Acción: {title}",
        effort=effort if effort in plan_generator.EFFORT_VALUES else "pequeno",
        source=source,
    )
    goal.checkins.append(step)
    db.flush()
    return step


def regenerate_steps(
    db: Session,
    goal: Experiment,
    stage: Optional[str] = None,
    request_id: Optional[str] = None,
) -> List[ExperimentCheckin]:
    """Replace the pending steps scoped to a stage with a freshly generated batch."""
    target_stage = stage or goal.status or "building"
    for step in list(goal.checkins):
        if step.status == "pending" and step.for_stage == target_stage:
            goal.checkins.remove(step)
    db.flush()

    generated = plan_generator.generate_steps(
        goal.title,
        goal.description,
        target_stage,
        situational_context=goal.context,
        category=goal.detected_category,
        request_id=request_id,
    )
    return goal_service.add_generated_steps(db, goal, generated, target_stage)
