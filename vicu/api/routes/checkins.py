"""Step (check-in) API routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vicu.api import views
from vicu.api.schemas.checkin import (
    CheckinCreateRequest,
    CheckinCreateResponse,
    CheckinDoneResponse,
    StepsRegenerateResponse,
)
from vicu.core.identity import Identity, get_identity, identity_user_id
from vicu.db.deps import get_db
from vicu.db.models import ExperimentCheckin
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import step_service

router = APIRouter()


@router.post(
    "/experiment-checkins",
    response_model=CheckinCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["checkins"],
)
def create_checkin(
    payload: CheckinCreateRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> CheckinCreateResponse:
    """Add a manual pending step to a goal."""
    if not payload.step_title or not payload.step_title.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El título del paso es requerido")

    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, payload.experiment_id, identity)
    try:
        with trace(
            "checkin.create",
            metadata={"experiment_id": str(goal.id), "for_stage": payload.for_stage or goal.status},
            request_id=request_id,
        ):
            step = step_service.create_manual_step(
                db,
                goal,
                payload.step_title,
                step_description=payload.step_description,
                effort=payload.effort,
                for_stage=payload.for_stage,
            )
            db.commit()
            db.refresh(step)
    except Exception:
        db.rollback()
        raise

    log_metric("checkin.create.success", 1)
    return CheckinCreateResponse(step=views.step_payload(step), request_id=request_id or "")


@router.post("/experiment-checkins/{checkin_id}/done", response_model=CheckinDoneResponse, tags=["checkins"])
def complete_checkin(
    checkin_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> CheckinDoneResponse:
    """Complete a step: goal streak, XP for signed-in users and a transition offer when the stage is done."""
    request_id = getattr(http_request.state, "request_id", None)
    step = db.get(ExperimentCheckin, checkin_id)
    if step is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paso no encontrado")
    views.load_goal(db, step.experiment_id, identity)
    user_id = identity_user_id(identity)

    try:
        with trace(
            "checkin.done",
            metadata={"checkin_id": str(checkin_id), "experiment_id": str(step.experiment_id)},
            user_id=str(user_id) if user_id else None,
            request_id=request_id,
        ):
            completion = step_service.complete_step(db, step, identity)
            db.commit()
    except Exception:
        db.rollback()
        raise

    if completion.gamification is not None:
        log_metric("checkin.xp_gained", completion.gamification.xp_gained)
    log_metric(
        "checkin.done.success",
        1,
        metadata={"already_done": completion.already_done, "transition": completion.transition is not None},
    )
    goal = completion.goal
    return CheckinDoneResponse(
        step=views.step_payload(completion.step),
        experiment_id=goal.id,
        goal_streak_days=goal.streak_days or 0,
        stage_progress=views.stage_progress_payload(goal),
        gamification=views.gamification_payload(completion.gamification),
        transition=views.transition_payload(completion.transition),
        already_done=completion.already_done,
        request_id=request_id or "",
    )


@router.post(
    "/experiments/{experiment_id}/steps/regenerate",
    response_model=StepsRegenerateResponse,
    tags=["checkins"],
)
def regenerate_steps(
    experiment_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> StepsRegenerateResponse:
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    try:
        with trace(
            "steps.regenerate",
            metadata={"experiment_id": str(experiment_id), "stage": goal.status},
            request_id=request_id,
        ):
            steps = step_service.regenerate_steps(db, goal, request_id=request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("steps.regenerate.success", 1, metadata={"count": len(steps)})
    return StepsRegenerateResponse(
        experiment_id=goal.id,
        stage=goal.status,
        steps=[views.step_payload(step) for step in steps],
        request_id=request_id or "",
    )
