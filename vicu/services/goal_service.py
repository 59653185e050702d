"""Goal creation, lookup and the read-side views built around a goal."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from vicu.core.config import settings
from vicu.core.identity import Identity, identity_user_id
from vicu.db.models import Experiment, ExperimentCheckin
from vicu.services import cadence, plan_generator, stage_machine
from vicu.services.cadence import Rhythm
from vicu.services.plan_generator import ExperimentBrief, GeneratedSteps
from vicu.services.stage_machine import StageProgress, StepState
from vicu.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

FALLBACK_TITLE_WORDS = 5
MAX_TITLE_LENGTH = 50


class GoalNotFound(Exception):
    pass


class GoalAccessDenied(Exception):
    pass


@dataclass
class GoalDraft:
    description: str
    title: Optional[str] = None
    experiment_type: Optional[str] = None
    surface_type: Optional[str] = None
    context: Optional[str] = None
    target_audience: Optional[str] = None
    promise: Optional[str] = None
    desired_action: Optional[str] = None
    deadline: Optional[date] = None
    deadline_source: Optional[str] = None
    detected_category: Optional[str] = None
    first_steps: List[str] = field(default_factory=list)


def fallback_title(description: str) -> str:
    """First five words of the description, shortened to fit 50 characters."""
    words = " ".join(description.split()[:FALLBACK_TITLE_WORDS])
    if len(words) > MAX_TITLE_LENGTH:
        return words[: MAX_TITLE_LENGTH - 3] + "..."
    return words


def get_goal(db: Session, goal_id: UUID, identity: Identity) -> Experiment:
    """Load a goal the caller may see; owned goals require the owner's identity."""
    goal = db.get(Experiment, goal_id)
    if goal is None:
        raise GoalNotFound(str(goal_id))
    if goal.user_id is not None and goal.user_id != identity_user_id(identity):
        raise GoalAccessDenied(str(goal_id))
    return goal


def rhythm_for_goal(goal: Experiment) -> Rhythm:
    if goal.action_cadence and goal.metrics_cadence and goal.decision_cadence_days:
        return Rhythm(goal.action_cadence, goal.metrics_cadence, goal.decision_cadence_days)
    return cadence.compute_default_rhythm(goal.surface_type, goal.context, goal.experiment_type, len(goal.actions))


def goal_brief(goal: Experiment) -> ExperimentBrief:
    return ExperimentBrief(
        title=goal.title,
        description=goal.description,
        experiment_type=goal.experiment_type or "clientes",
        surface_type=goal.surface_type or "landing",
        target_audience=goal.target_audience,
        promise=goal.promise,
        desired_action=goal.desired_action,
    )


def step_states(steps: Sequence[ExperimentCheckin]) -> List[StepState]:
    return [
        StepState(scope=stage_machine.scope_from_tag(step.for_stage), done=step.status == "done")
        for step in steps
    ]


def stage_progress(goal: Experiment) -> StageProgress:
    return stage_machine.compute_stage_progress(step_states(goal.checkins), goal.status)


def current_stage_steps(goal: Experiment) -> List[ExperimentCheckin]:
    return [
        step
        for step in goal.checkins
        if stage_machine.scope_matches(stage_machine.scope_from_tag(step.for_stage), goal.status)
    ]


def last_action_date(goal: Experiment) -> Optional[date]:
    done_dates = [action.done_at for action in goal.actions if action.done_at is not None]
    if not done_dates:
        return None
    return max(done_dates).date()


def add_generated_steps(
    db: Session,
    goal: Experiment,
    generated: GeneratedSteps,
    stage: str,
) -> List[ExperimentCheckin]:
    rows = [
        ExperimentCheckin(
            experiment_id=goal.id,
            user_id=goal.user_id,
            for_stage=stage,
            status="pending",
            step_title=step.title,
            step_description=plan_generator.ensure_description(step.title, step.description),
            effort=step.effort or "pequeno",
            source="ai",
        )
        for step in generated.steps
    ]
    for row in rows:
        goal.checkins.append(row)
    db.flush()
    return rows


def create_goal(
    db: Session,
    identity: Identity,
    draft: GoalDraft,
    request_id: Optional[str] = None,
) -> Tuple[Experiment, bool]:
    """Insert a goal with its default rhythm and first steps; also reports whether fallback steps were used."""
    user_id = identity_user_id(identity)
    if user_id is not None:
        get_or_create_user(db, user_id)

    description = draft.description.strip()
    surface_type = draft.surface_type or "landing"
    experiment_type = draft.experiment_type or "clientes"
    goal = Experiment(
        user_id=user_id,
        title=(draft.title or "").strip() or fallback_title(description),
        description=description,
        experiment_type=experiment_type,
        surface_type=surface_type,
        context=draft.context,
        detected_category=draft.detected_category,
        target_audience=draft.target_audience,
        promise=draft.promise,
        desired_action=draft.desired_action,
        status=settings.initial_goal_stage,
        deadline=draft.deadline,
        deadline_source=draft.deadline_source or "ai_suggested",
        recommendation_history=[],
    )
    if settings.goal_rhythm_columns_enabled:
        rhythm = cadence.compute_default_rhythm(surface_type, draft.context, experiment_type)
        goal.action_cadence = rhythm.action_cadence
        goal.metrics_cadence = rhythm.metrics_cadence
        goal.decision_cadence_days = rhythm.decision_cadence_days

    db.add(goal)
    db.flush()

    generated = plan_generator.generate_steps(
        goal.title,
        description,
        goal.status,
        situational_context=draft.context,
        category=draft.detected_category,
        first_steps=draft.first_steps or None,
        request_id=request_id,
    )
    add_generated_steps(db, goal, generated, goal.status)
    logger.info(
        "Goal created",
        extra={"experiment_id": str(goal.id), "steps": len(generated.steps), "fallback": generated.fallback_used},
    )
    return goal, generated.fallback_used


def update_deadline(db: Session, goal: Experiment, deadline: date, today: Optional[date] = None) -> Experiment:
    """Set a user deadline and re-spread due dates over all actions in plan order."""
    goal.deadline = deadline
    goal.deadline_source = "user"
    actions = sorted(goal.actions, key=lambda action: action.suggested_order or 0)
    due_dates = cadence.calculate_suggested_due_dates(
        len(actions), deadline, goal.experiment_type, goal.surface_type, today
    )
    for action, due_date in zip(actions, due_dates):
        action.suggested_due_date = due_date
    db.flush()
    return goal


def set_self_result(db: Session, goal: Experiment, self_result: Optional[str]) -> Experiment:
    goal.self_result = self_result
    db.flush()
    return goal


def days_since_start(goal: Experiment, now: datetime) -> int:
    if goal.created_at is None:
        return 0
    return max(0, (now - goal.created_at).days)
