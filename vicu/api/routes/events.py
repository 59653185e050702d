"""Landing-page tracking routes: visits, form submits and leads."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vicu.api.schemas.events import EventCreateRequest, EventCreateResponse, LeadCreateRequest, LeadCreateResponse
from vicu.db.deps import get_db
from vicu.db.models import Event, Experiment, Lead
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace

router = APIRouter()


def _require_experiment(db: Session, experiment_id) -> Experiment:
    goal = db.get(Experiment, experiment_id)
    if goal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Objetivo no encontrado")
    return goal


@router.post("/events", response_model=EventCreateResponse, status_code=status.HTTP_201_CREATED, tags=["events"])
def create_event(
    payload: EventCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> EventCreateResponse:
    """Public landing tracker; no identity is required."""
    request_id = getattr(http_request.state, "request_id", None)
    _require_experiment(db, payload.experiment_id)
    try:
        with trace(
            "events.create",
            metadata={"experiment_id": str(payload.experiment_id), "type": payload.type},
            request_id=request_id,
        ):
            event = Event(experiment_id=payload.experiment_id, type=payload.type, metadata_json=payload.metadata)
            db.add(event)
            db.commit()
            db.refresh(event)
    except Exception:
        db.rollback()
        raise

    log_metric("events.create.success", 1, metadata={"type": payload.type})
    return EventCreateResponse(
        id=event.id,
        experiment_id=event.experiment_id,
        type=event.type,
        request_id=request_id or "",
    )


@router.post("/lead", response_model=LeadCreateResponse, status_code=status.HTTP_201_CREATED, tags=["events"])
def create_lead(
    payload: LeadCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> LeadCreateResponse:
    email = (payload.email or "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El email es requerido")

    request_id = getattr(http_request.state, "request_id", None)
    _require_experiment(db, payload.experiment_id)
    try:
        with trace("lead.create", metadata={"experiment_id": str(payload.experiment_id)}, request_id=request_id):
            lead = Lead(
                experiment_id=payload.experiment_id,
                name=(payload.name or "").strip() or None,
                email=email,
                message=(payload.message or "").strip() or None,
            )
            db.add(lead)
            db.add(Event(experiment_id=payload.experiment_id, type="form_submit", metadata_json={"source": "lead"}))
            db.commit()
            db.refresh(lead)
    except Exception:
        db.rollback()
        raise

    log_metric("lead.create.success", 1)
    return LeadCreateResponse(id=lead.id, experiment_id=lead.experiment_id, request_id=request_id or "")
