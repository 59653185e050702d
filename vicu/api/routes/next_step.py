"""Next-step and step chat coaching routes."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vicu.api import views
from vicu.api.schemas.coaching import NextStepRequest, NextStepResponse, StepChatRequest, StepChatResponse
from vicu.core.identity import Identity, get_identity
from vicu.db.deps import get_db
from vicu.db.models import Experiment, ExperimentCheckin
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import advice_generator, stage_machine
from vicu.services.prompts import NEXT_STEP_STATE_LABELS

router = APIRouter()

MAX_CONTEXT_ACTIONS = 10


def _goal_context(goal: Experiment) -> str:
    lines = [
        f"Proyecto: {goal.title}",
        f"Descripción: {goal.description}",
        f"Etapa: {stage_machine.STAGE_LABELS.get(goal.status, goal.status)}",
    ]
    if goal.target_audience:
        lines.append(f"Público: {goal.target_audience}")
    pending = [action.title for action in goal.actions if action.status != "done"][:MAX_CONTEXT_ACTIONS]
    if pending:
        lines.append("Acciones pendientes:\n" + "\n".join(f"- {title}" for title in pending))
    return "\n".join(lines)


def _completed_titles(goal: Experiment) -> List[str]:
    titles = [step.step_title for step in goal.checkins if step.status == "done"]
    titles.extend(action.title for action in goal.actions if action.status == "done")
    return titles[-MAX_CONTEXT_ACTIONS:]


@router.post("/next-step", response_model=NextStepResponse, tags=["coaching"])
def next_step(
    payload: NextStepRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> NextStepResponse:
    """Suggest one concrete next step for how the user says they are doing."""
    if payload.current_state not in NEXT_STEP_STATE_LABELS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Estado actual inválido")
    if payload.experiment_id is None and not (payload.goal_title or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Se requiere un objetivo")

    request_id = getattr(http_request.state, "request_id", None)
    completed: List[str] = []
    experiment_id: Optional[str] = None
    if payload.experiment_id is not None:
        goal = views.load_goal(db, payload.experiment_id, identity)
        context = _goal_context(goal)
        completed = _completed_titles(goal)
        experiment_id = str(goal.id)
    else:
        context = f"Proyecto: {payload.goal_title.strip()}"
        if payload.goal_description:
            context += f"\nDescripción: {payload.goal_description.strip()}"

    with trace(
        "coaching.next_step",
        metadata={"experiment_id": experiment_id, "current_state": payload.current_state},
        request_id=request_id,
    ):
        generated = advice_generator.generate_next_step(
            context,
            payload.current_state,
            previous_step_title=payload.previous_step_title,
            completed_titles=completed,
            request_id=request_id,
        )

    log_metric(
        "coaching.next_step.success",
        1,
        metadata={"current_state": payload.current_state, "fallback": generated.fallback_used},
    )
    return NextStepResponse(**generated.to_dict())


@router.post("/step-chat", response_model=StepChatResponse, tags=["coaching"])
def step_chat(
    payload: StepChatRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> StepChatResponse:
    """Chat about one step: simplify it, explain it or unblock it."""
    user_message = (payload.user_message or "").strip()
    if not user_message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El mensaje es requerido")

    request_id = getattr(http_request.state, "request_id", None)
    if payload.checkin_id is not None:
        step = db.get(ExperimentCheckin, payload.checkin_id)
        if step is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paso no encontrado")
        goal = views.load_goal(db, step.experiment_id, identity)
        notes = [step.user_notes] if step.user_notes else list(payload.user_notes)
        context = advice_generator.StepChatContext(
            project_title=goal.title,
            project_description=goal.description,
            step_title=step.step_title,
            step_description=step.step_description,
            current_suggestion=payload.current_suggestion,
            user_notes=notes,
        )
    elif (payload.step_title or "").strip():
        context = advice_generator.StepChatContext(
            project_title=(payload.project_title or "").strip(),
            project_description=payload.project_description,
            step_title=payload.step_title.strip(),
            step_description=payload.step_description,
            current_suggestion=payload.current_suggestion,
            user_notes=list(payload.user_notes),
        )
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Se requiere un paso")

    with trace("coaching.step_chat", metadata={"turns": len(payload.messages)}, request_id=request_id):
        reply = advice_generator.step_chat_reply(
            context,
            [turn.model_dump() for turn in payload.messages],
            user_message,
            request_id=request_id,
        )

    log_metric("coaching.step_chat.success", 1, metadata={"fallback": reply.fallback_used})
    return StepChatResponse(content=reply.content, fallback_used=reply.fallback_used, request_id=request_id or "")
