"""Read-side counters feeding the recommendation engine."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from vicu.db.models import Event, ExperimentAction
from vicu.services.recommendation import ExperimentMetrics

VISIT_EVENT = "visit"
FORM_SUBMIT_EVENT = "form_submit"
EVENT_TYPES = (VISIT_EVENT, FORM_SUBMIT_EVENT)


def fetch_experiment_metrics(db: Session, experiment_id: UUID) -> ExperimentMetrics:
    """Visits, leads and done/total actions for one goal, from two grouped counts."""
    event_counts = dict(
        db.execute(
            select(Event.type, func.count(Event.id))
            .where(Event.experiment_id == experiment_id, Event.type.in_(EVENT_TYPES))
            .group_by(Event.type)
        ).all()
    )
    action_counts = dict(
        db.execute(
            select(ExperimentAction.status, func.count(ExperimentAction.id))
            .where(ExperimentAction.experiment_id == experiment_id)
            .group_by(ExperimentAction.status)
        ).all()
    )
    return ExperimentMetrics(
        visits=event_counts.get(VISIT_EVENT, 0),
        leads=event_counts.get(FORM_SUBMIT_EVENT, 0),
        total_actions=sum(action_counts.values()),
        done_actions=action_counts.get("done", 0),
    )
