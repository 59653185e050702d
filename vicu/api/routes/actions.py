"""Attack-plan API routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vicu.api import views
from vicu.api.schemas.experiment import ActionDoneResponse, AttackPlanResponse, MoreActionsRequest
from vicu.core.identity import Identity, get_identity
from vicu.db.deps import get_db
from vicu.db.models import ExperimentAction
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import action_service

router = APIRouter()


@router.post("/experiments/{experiment_id}/attack-plan", response_model=AttackPlanResponse, tags=["actions"])
def create_attack_plan(
    experiment_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> AttackPlanResponse:
    """Generate the multi-channel plan and persist its actions with due dates."""
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    try:
        with trace(
            "attack_plan.create",
            metadata={
                "experiment_id": str(experiment_id),
                "experiment_type": goal.experiment_type,
                "surface_type": goal.surface_type,
            },
            request_id=request_id,
        ):
            rows, fallback_used = action_service.generate_plan_actions(db, goal, request_id=request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("attack_plan.create.success", 1, metadata={"actions": len(rows), "fallback": fallback_used})
    return AttackPlanResponse(
        experiment_id=goal.id,
        actions=[views.action_payload(row) for row in rows],
        fallback_used=fallback_used,
        request_id=request_id or "",
    )


@router.post("/experiments/{experiment_id}/attack-plan/more", response_model=AttackPlanResponse, tags=["actions"])
def add_more_actions(
    experiment_id: UUID,
    payload: MoreActionsRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> AttackPlanResponse:
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    channel = payload.channel.strip()
    if not channel:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Canal requerido")
    try:
        with trace(
            "attack_plan.more",
            metadata={"experiment_id": str(experiment_id), "channel": channel},
            request_id=request_id,
        ):
            rows = action_service.add_more_actions(db, goal, channel, request_id=request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("attack_plan.more.success", 1, metadata={"channel": channel})
    return AttackPlanResponse(
        experiment_id=goal.id,
        actions=[views.action_payload(row) for row in rows],
        fallback_used=False,
        request_id=request_id or "",
    )


@router.post("/experiment-actions/{action_id}/done", response_model=ActionDoneResponse, tags=["actions"])
def mark_action_done(
    action_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> ActionDoneResponse:
    request_id = getattr(http_request.state, "request_id", None)
    action = db.get(ExperimentAction, action_id)
    if action is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Acción no encontrada")
    views.load_goal(db, action.experiment_id, identity)

    try:
        with trace("action.done", metadata={"action_id": str(action_id)}, request_id=request_id):
            action_service.mark_action_done(db, action)
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("action.done.success", 1, metadata={"channel": action.channel})
    return ActionDoneResponse(action=views.action_payload(action), request_id=request_id or "")
