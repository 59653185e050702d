"""Stage advice and stage-transition API routes."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vicu.api import views
from vicu.api.schemas.stage import (
    RecommendationRequest,
    RecommendationResponse,
    StageTransitionOfferResponse,
    StageTransitionRequest,
    StageTransitionResponse,
)
from vicu.core.identity import Identity, get_identity, identity_user_id
from vicu.db.deps import get_db
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import recommendation_service, stage_service
from vicu.services.stage_service import InvalidStageTransition

router = APIRouter()


@router.post(
    "/experiments/{experiment_id}/recommendation",
    response_model=RecommendationResponse,
    tags=["stage"],
)
def get_recommendation(
    experiment_id: UUID,
    http_request: Request,
    payload: Optional[RecommendationRequest] = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> RecommendationResponse:
    """Return the stored stage advice, or generate one when stale or forced."""
    request_id = getattr(http_request.state, "request_id", None)
    force_new = payload.force_new if payload else False
    goal = views.load_goal(db, experiment_id, identity)
    try:
        with trace(
            "stage.recommendation",
            metadata={"experiment_id": str(experiment_id), "stage": goal.status, "force_new": force_new},
            request_id=request_id,
        ):
            recommendation, generated = recommendation_service.get_or_generate_recommendation(
                db, goal, force_new=force_new, request_id=request_id
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric(
        "stage.recommendation.success",
        1,
        metadata={"generated": generated, "source": recommendation.source},
    )
    return RecommendationResponse(
        experiment_id=goal.id,
        recommendation=views.recommendation_payload(recommendation),
        generated=generated,
        history_count=len(goal.recommendation_history or []),
        request_id=request_id or "",
    )


@router.get(
    "/experiments/{experiment_id}/stage-transition",
    response_model=StageTransitionOfferResponse,
    tags=["stage"],
)
def get_stage_transition(
    experiment_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> StageTransitionOfferResponse:
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    with trace("stage.transition.offer", metadata={"experiment_id": str(experiment_id)}, request_id=request_id):
        offer = stage_service.transition_offer(goal)
    return StageTransitionOfferResponse(
        experiment_id=goal.id,
        current_stage=goal.status,
        stage_progress=views.stage_progress_payload(goal),
        transition=views.transition_payload(offer),
        request_id=request_id or "",
    )


@router.post(
    "/experiments/{experiment_id}/stage-transition",
    response_model=StageTransitionResponse,
    tags=["stage"],
)
def accept_stage_transition(
    experiment_id: UUID,
    payload: StageTransitionRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> StageTransitionResponse:
    """Move the goal to the requested stage; illegal moves are rejected with 409."""
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    user_id = identity_user_id(identity)
    try:
        with trace(
            "stage.transition.accept",
            metadata={"experiment_id": str(experiment_id), "from": goal.status, "to": payload.target_stage},
            user_id=str(user_id) if user_id else None,
            request_id=request_id,
        ):
            result = stage_service.accept_transition(db, goal, payload.target_stage, request_id=request_id)
            db.commit()
    except InvalidStageTransition as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transición no permitida: {exc.current} → {exc.target}",
        )
    except Exception:
        db.rollback()
        raise

    log_metric("stage.transition.success", 1, metadata={"to": payload.target_stage, "changed": result.changed})
    return StageTransitionResponse(
        experiment_id=goal.id,
        previous_stage=result.previous_stage,
        current_stage=goal.status,
        changed=result.changed,
        steps_generated=result.steps_generated,
        recommendation=views.recommendation_payload(result.recommendation),
        project_completed=views.gamification_payload(result.project_completed),
        request_id=request_id or "",
    )
