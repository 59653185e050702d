"""Goal (experiment) API routes: intake analysis, creation, detail, deadline, self result and insights."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vicu.api import views
from vicu.api.schemas.experiment import (
    AnalyzeChatRequest,
    AnalyzeChatResponse,
    ChatAnalysisPayload,
    DeadlineUpdateRequest,
    ExperimentCreateRequest,
    ExperimentCreateResponse,
    ExperimentDetail,
    InsightsResponse,
    MetricsPayload,
    ProgressPayload,
    RecommendationPayload,
    SelfResultRequest,
)
from vicu.core.identity import Identity, get_identity, identity_user_id
from vicu.db.deps import get_db
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import record_output, trace
from vicu.services import chat_analyzer, goal_service, metrics_service, recommendation
from vicu.services.goal_service import GoalDraft

router = APIRouter()


@router.post(
    "/experiments",
    response_model=ExperimentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["experiments"],
)
def create_experiment(
    payload: ExperimentCreateRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> ExperimentCreateResponse:
    """Create a goal with its default rhythm and first steps."""
    if not payload.description or not payload.description.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La descripción es requerida")

    request_id = getattr(http_request.state, "request_id", None)
    user_id = identity_user_id(identity)
    metadata: Dict[str, Any] = {
        "route": "/experiments",
        "experiment_type": payload.experiment_type,
        "surface_type": payload.surface_type,
        "anonymous": user_id is None,
        "request_id": request_id,
    }

    try:
        with trace(
            "experiment.create",
            metadata=metadata,
            user_id=str(user_id) if user_id else None,
            request_id=request_id,
        ):
            goal, fallback_used = goal_service.create_goal(
                db,
                identity,
                GoalDraft(
                    description=payload.description,
                    title=payload.title,
                    experiment_type=payload.experiment_type,
                    surface_type=payload.surface_type,
                    context=payload.context,
                    target_audience=payload.target_audience,
                    promise=payload.promise,
                    desired_action=payload.desired_action,
                    deadline=payload.deadline,
                    deadline_source=payload.deadline_source,
                    detected_category=payload.detected_category,
                    first_steps=payload.first_steps,
                ),
                request_id=request_id,
            )
            db.commit()
            db.refresh(goal)
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("experiment.create.success", 1, metadata={"surface_type": goal.surface_type})
    return ExperimentCreateResponse(
        experiment=views.experiment_detail(goal),
        steps_fallback_used=fallback_used,
        request_id=request_id or "",
    )


@router.get("/experiments/{experiment_id}", response_model=ExperimentDetail, tags=["experiments"])
def get_experiment(
    experiment_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> ExperimentDetail:
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "experiment.get",
        metadata={"route": "/experiments/{id}", "experiment_id": str(experiment_id)},
        request_id=request_id,
    ):
        goal = views.load_goal(db, experiment_id, identity)
        detail = views.experiment_detail(goal)
    log_metric("experiment.get.success", 1)
    return detail


@router.put("/experiments/{experiment_id}/deadline", response_model=ExperimentDetail, tags=["experiments"])
def update_experiment_deadline(
    experiment_id: UUID,
    payload: DeadlineUpdateRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> ExperimentDetail:
    """Set a user deadline and re-spread the action due dates."""
    if payload.deadline is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Deadline es requerido")

    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    try:
        with trace(
            "experiment.deadline.update",
            metadata={"experiment_id": str(experiment_id), "deadline": payload.deadline.isoformat()},
            request_id=request_id,
        ):
            goal_service.update_deadline(db, goal, payload.deadline, today=date.today())
            db.commit()
            db.refresh(goal)
    except Exception:
        db.rollback()
        raise

    log_metric("experiment.deadline.update.success", 1, metadata={"actions": len(goal.actions)})
    return views.experiment_detail(goal)


@router.patch("/experiments/{experiment_id}/self-result", response_model=ExperimentDetail, tags=["experiments"])
def update_self_result(
    experiment_id: UUID,
    payload: SelfResultRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> ExperimentDetail:
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    try:
        with trace(
            "experiment.self_result.update",
            metadata={"experiment_id": str(experiment_id), "self_result": payload.self_result},
            request_id=request_id,
        ):
            goal_service.set_self_result(db, goal, payload.self_result)
            db.commit()
            db.refresh(goal)
    except Exception:
        db.rollback()
        raise

    log_metric("experiment.self_result.update.success", 1)
    return views.experiment_detail(goal)


@router.get("/experiments/{experiment_id}/insights", response_model=InsightsResponse, tags=["experiments"])
def get_experiment_insights(
    experiment_id: UUID,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> InsightsResponse:
    """Rule-engine recommendation from metrics, self result, rhythm and age."""
    request_id = getattr(http_request.state, "request_id", None)
    goal = views.load_goal(db, experiment_id, identity)
    now = datetime.now(timezone.utc)

    with trace(
        "experiment.insights",
        metadata={"experiment_id": str(experiment_id), "surface_type": goal.surface_type},
        request_id=request_id,
    ) as insights_trace:
        metrics = metrics_service.fetch_experiment_metrics(db, goal.id)
        advice = recommendation.calculate_recommendation(
            metrics,
            surface_type=goal.surface_type or "landing",
            self_result=goal.self_result,
            rhythm=goal_service.rhythm_for_goal(goal),
            created_at=goal.created_at,
            now=now,
        )
        progress = recommendation.progress_message(metrics.done_actions, metrics.total_actions)
        record_output(insights_trace, {"tag": advice.tag})

    log_metric("experiment.insights.success", 1, metadata={"tag": advice.tag})
    return InsightsResponse(
        experiment_id=goal.id,
        recommendation=RecommendationPayload(**advice.to_dict()),
        progress=ProgressPayload(
            done=progress.done,
            total=progress.total,
            ratio=progress.ratio,
            message=progress.message,
        ),
        metrics=MetricsPayload(
            visits=metrics.visits,
            leads=metrics.leads,
            total_actions=metrics.total_actions,
            done_actions=metrics.done_actions,
        ),
        days_since_start=goal_service.days_since_start(goal, now),
        request_id=request_id or "",
    )

@router.post("/analyze-chat", response_model=AnalyzeChatResponse, tags=["experiments"])
def analyze_chat(payload: AnalyzeChatRequest, http_request: Request) -> AnalyzeChatResponse:
    """Classify an intake conversation and return a brief ready for goal creation."""
    if not payload.messages:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Se requieren mensajes")

    request_id = getattr(http_request.state, "request_id", None)
    turns = [chat_analyzer.ChatTurn(role=message.role, content=message.content) for message in payload.messages]
    with trace("experiment.analyze_chat", metadata={"turns": len(turns)}, request_id=request_id) as analyze_trace:
        result = chat_analyzer.analyze_chat(turns, request_id=request_id)
        analysis = result.analysis
        record_output(
            analyze_trace,
            {
                "category": analysis.detected_category,
                "surface_type": analysis.surface_type,
                "confidence": analysis.confidence,
            },
        )

    log_metric("experiment.analyze_chat.success", 1, metadata={"fallback": result.fallback_used})
    return AnalyzeChatResponse(
        analysis=ChatAnalysisPayload(**analysis.model_dump()),
        is_complete=chat_analyzer.is_analysis_complete(analysis),
        goal_draft=ExperimentCreateRequest(**chat_analyzer.goal_draft(analysis)),
        fallback_used=result.fallback_used,
        request_id=request_id or "",
    )
