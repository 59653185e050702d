"""Attack-plan actions: generation, extension and completion."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from vicu.db.models import Experiment, ExperimentAction
from vicu.services import cadence, goal_service, plan_generator

logger = logging.getLogger(__name__)


def generate_plan_actions(
    db: Session,
    goal: Experiment,
    request_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[List[ExperimentAction], bool]:
    """
    Replace the goal's unfinished actions with a freshly generated attack plan.

    Done actions are kept. New actions are numbered after them and get due dates
    spread toward the goal deadline.
    """
    generated = plan_generator.generate_attack_plan(goal_service.goal_brief(goal), request_id=request_id)
    dated = cadence.add_due_dates_to_attack_plan(
        generated.plan.model_dump(),
        deadline=goal.deadline,
        experiment_type=goal.experiment_type,
        surface_type=goal.surface_type,
        today=today,
    )

    for action in list(goal.actions):
        if action.status != "done":
            goal.actions.remove(action)
    db.flush()

    order = max((action.suggested_order or 0 for action in goal.actions), default=0)
    rows = []
    for channel in dated["channels"]:
        for action in channel["actions"]:
            order += 1
            row = ExperimentAction(
                experiment_id=goal.id,
                channel=channel["channel"],
                action_type=action.get("action_type") or "mensaje_directo",
                title=action["title"],
                content=action.get("content") or "",
                status="pending",
                suggested_order=order,
                suggested_due_date=date.fromisoformat(action["suggested_due_date"]),
            )
            goal.actions.append(row)
            rows.append(row)
    db.flush()
    logger.info(
        "Attack plan stored",
        extra={"experiment_id": str(goal.id), "actions": len(rows), "fallback": generated.fallback_used},
    )
    return rows, generated.fallback_used


def add_more_actions(
    db: Session,
    goal: Experiment,
    channel: str,
    request_id: Optional[str] = None,
) -> List[ExperimentAction]:
    existing_titles = [action.title for action in goal.actions if action.channel == channel]
    drafts = plan_generator.generate_more_actions(
        goal_service.goal_brief(goal), channel, existing_titles, request_id=request_id
    )
    order = max((action.suggested_order or 0 for action in goal.actions), default=0)
    rows = []
    for draft in drafts:
        order += 1
        row = ExperimentAction(
            experiment_id=goal.id,
            channel=channel,
            action_type=draft.action_type,
            title=draft.title,
            content=draft.content,
            status="pending",
            suggested_order=order,
        )
        goal.actions.append(row)
        rows.append(row)
    db.flush()
    return rows


def mark_action_done(db: Session, action: ExperimentAction, now: Optional[datetime] = None) -> ExperimentAction:
    if action.status != "done":
        action.status = "done"
        action.done_at = now or datetime.now(timezone.utc)
        db.flush()
    return action
