"""Step assignment routes: delegate a step, the helper's public link, and helper nudges."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from vicu.api.schemas.assignment import (
    AssignmentAnswerRequest,
    AssignmentAnswerResponse,
    AssignmentCreateRequest,
    AssignmentCreateResponse,
    AssignmentListResponse,
    AssignmentPayload,
    AssignmentReminderRunResponse,
    PublicAssignmentPayload,
    PublicAssignmentResponse,
)
from vicu.core.identity import Authenticated, Identity, get_identity, require_cron_secret
from vicu.db.deps import get_db
from vicu.db.models import StepAssignment
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import assignment_service
from vicu.services.assignment_service import (
    AssignmentAlreadyAnswered,
    AssignmentExpired,
    AssignmentForbidden,
    AssignmentNotFound,
    InvalidAssignment,
    StepNotFound,
)
from vicu.services.whatsapp import InvalidPhoneNumber

router = APIRouter()

THANKS_COMPLETED = "¡Gracias por tu ayuda!"
THANKS_DECLINED = "Entendido, gracias por avisar."


def _payload(assignment: StepAssignment) -> AssignmentPayload:
    return AssignmentPayload(
        id=assignment.id,
        checkin_id=assignment.checkin_id,
        helper_name=assignment.helper_name,
        helper_contact=assignment.helper_contact,
        contact_type=assignment.contact_type,
        custom_message=assignment.custom_message,
        status=assignment.status,
        token_expires_at=assignment.token_expires_at,
        response_message=assignment.response_message,
        responded_at=assignment.responded_at,
        notification_sent_at=assignment.notification_sent_at,
        reminder_count=assignment.reminder_count or 0,
    )


def _owner(identity: Identity) -> Authenticated:
    if not isinstance(identity, Authenticated):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No autorizado")
    return identity


@router.post(
    "/step-assignments",
    response_model=AssignmentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["assignments"],
)
def create_step_assignment(
    payload: AssignmentCreateRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> AssignmentCreateResponse:
    """Ask someone outside Vicu to take care of a step."""
    owner = _owner(identity)
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "assignment.create",
            metadata={"contact_type": payload.contact_type},
            user_id=str(owner.user_id),
            request_id=request_id,
        ):
            created = assignment_service.create_assignment(
                db,
                owner.user_id,
                payload.checkin_id,
                payload.helper_name,
                payload.helper_contact,
                payload.contact_type,
                payload.custom_message,
                request_id=request_id,
            )
            db.commit()
            db.refresh(created.assignment)
    except (InvalidAssignment, InvalidPhoneNumber) as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except StepNotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except AssignmentForbidden as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except Exception:
        db.rollback()
        raise

    log_metric("assignment.create.success", 1)
    return AssignmentCreateResponse(
        assignment=_payload(created.assignment),
        public_url=created.public_url,
        notification_sent=created.notification_sent,
        notification_error=created.notification_error,
        request_id=request_id or "",
    )


@router.get("/step-assignments", response_model=AssignmentListResponse, tags=["assignments"])
def list_step_assignments(
    http_request: Request,
    checkin_id: Optional[UUID] = Query(default=None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> AssignmentListResponse:
    owner = _owner(identity)
    if checkin_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="checkin_id es requerido")
    request_id = getattr(http_request.state, "request_id", None)
    try:
        assignments = assignment_service.list_assignments(db, owner.user_id, checkin_id)
    except StepNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except AssignmentForbidden as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return AssignmentListResponse(assignments=[_payload(item) for item in assignments], request_id=request_id or "")


@router.get("/step-assignments/{token}", response_model=PublicAssignmentResponse, tags=["assignments"])
def get_public_assignment(token: str, db: Session = Depends(get_db)) -> PublicAssignmentResponse:
    """Public view for the helper; no session is required."""
    try:
        assignment = assignment_service.get_public_assignment(db, token)
    except AssignmentNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except AssignmentExpired as exc:
        db.commit()
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc))

    step = assignment.step
    return PublicAssignmentResponse(
        assignment=PublicAssignmentPayload(
            id=assignment.id,
            helper_name=assignment.helper_name,
            owner_name=assignment_service.owner_name(db, assignment.assigned_by),
            status=assignment.status,
            custom_message=assignment.custom_message,
            responded_at=assignment.responded_at,
            step_title=step.step_title,
            step_description=step.step_description,
            experiment_title=step.experiment.title if step.experiment else "Objetivo",
        )
    )


@router.post("/step-assignments/{token}", response_model=AssignmentAnswerResponse, tags=["assignments"])
def answer_assignment(
    token: str,
    payload: AssignmentAnswerRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> AssignmentAnswerResponse:
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("assignment.answer", metadata={"response": payload.response}, request_id=request_id):
            assignment = assignment_service.respond(db, token, payload.response, payload.message)
            db.commit()
    except InvalidAssignment as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except AssignmentNotFound as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except AssignmentExpired as exc:
        db.commit()
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc))
    except AssignmentAlreadyAnswered as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except Exception:
        db.rollback()
        raise

    log_metric("assignment.answer.success", 1, metadata={"response": assignment.status})
    return AssignmentAnswerResponse(
        status=assignment.status,
        message=THANKS_COMPLETED if assignment.status == "completed" else THANKS_DECLINED,
    )


@router.post(
    "/kapso/assignment-reminders",
    response_model=AssignmentReminderRunResponse,
    tags=["assignments"],
    dependencies=[Depends(require_cron_secret)],
)
def run_assignment_reminders(http_request: Request, db: Session = Depends(get_db)) -> AssignmentReminderRunResponse:
    """Daily job: remind silent helpers and expire abandoned assignments."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("assignment.reminders", request_id=request_id):
            summary = assignment_service.run_assignment_reminders(db, request_id=request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    return AssignmentReminderRunResponse(
        first_reminders=summary.first_reminders,
        final_reminders=summary.final_reminders,
        expired=summary.expired,
        owner_notices=summary.owner_notices,
        skipped=summary.skipped,
        request_id=request_id or "",
    )
