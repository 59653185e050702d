"""Delegating steps to outside helpers through expiring public links."""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from vicu.core.config import settings
from vicu.core.identity import Anonymous
from vicu.db.models import ExperimentCheckin, StepAssignment, User, WhatsAppConfig
from vicu.observability.metrics import log_metric
from vicu.services import step_service, whatsapp, whatsapp_service

logger = logging.getLogger(__name__)

CONTACT_TYPES = ("whatsapp", "email")
HELPER_RESPONSES = ("completed", "declined")
FIRST_REMINDER_DAY = 2
FINAL_REMINDER_DAY = 5
EXPIRY_DAY = 7
DEFAULT_OWNER_NAME = "Alguien"


class InvalidAssignment(ValueError):
    pass


class StepNotFound(LookupError):
    pass


class AssignmentForbidden(PermissionError):
    pass


class AssignmentNotFound(LookupError):
    pass


class AssignmentExpired(Exception):
    pass


class AssignmentAlreadyAnswered(Exception):
    pass


@dataclass
class AssignmentCreated:
    assignment: StepAssignment
    public_url: str
    notification_sent: bool
    notification_error: Optional[str] = None


@dataclass
class AssignmentReminderSummary:
    first_reminders: int = 0
    final_reminders: int = 0
    expired: int = 0
    owner_notices: int = 0
    skipped: List[str] = field(default_factory=list)


def public_url(token: str) -> str:
    return f"{settings.public_app_url.rstrip('/')}/s/{token}"


def owner_name(db: Session, user_id: UUID) -> str:
    user = db.get(User, user_id)
    return (user.display_name if user is not None else None) or DEFAULT_OWNER_NAME


def _owned_step(db: Session, checkin_id: UUID, owner_id: UUID, denied_message: str) -> ExperimentCheckin:
    step = db.get(ExperimentCheckin, checkin_id)
    if step is None:
        raise StepNotFound("Paso no encontrado")
    if step.experiment.user_id != owner_id:
        raise AssignmentForbidden(denied_message)
    return step


def create_assignment(
    db: Session,
    owner_id: UUID,
    checkin_id: Optional[UUID],
    helper_name: Optional[str],
    helper_contact: Optional[str],
    contact_type: Optional[str],
    custom_message: Optional[str] = None,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> AssignmentCreated:
    """
    Create a pending assignment for one of the owner's steps.

    WhatsApp helpers are messaged right away with the public link; the send result is
    recorded on the row. Email helpers only get the link back for the owner to share.
    """
    helper_name = (helper_name or "").strip()
    helper_contact = (helper_contact or "").strip()
    if checkin_id is None or not helper_name or not helper_contact or not contact_type:
        raise InvalidAssignment("Faltan campos requeridos")
    if contact_type not in CONTACT_TYPES:
        raise InvalidAssignment("contact_type debe ser 'whatsapp' o 'email'")

    step = _owned_step(db, checkin_id, owner_id, "No tienes permiso para asignar este paso")
    if contact_type == "whatsapp":
        helper_contact = whatsapp.normalize_phone_number(helper_contact)

    now = now or datetime.now(timezone.utc)
    assignment = StepAssignment(
        checkin_id=step.id,
        assigned_by=owner_id,
        helper_name=helper_name,
        helper_contact=helper_contact,
        contact_type=contact_type,
        custom_message=(custom_message or "").strip() or None,
        status="pending",
        access_token=secrets.token_urlsafe(24),
        token_expires_at=now + timedelta(days=settings.assignment_token_ttl_days),
    )
    db.add(assignment)
    db.flush()

    url = public_url(assignment.access_token)
    sent = False
    error = None
    if contact_type == "whatsapp":
        body = whatsapp.build_assignment_message(
            helper_name,
            owner_name(db, owner_id),
            step.step_title or "un paso de su objetivo",
            url,
            assignment.custom_message,
        )
        result = whatsapp_service.send_message(helper_contact, body, user_id=owner_id, request_id=request_id)
        if result.status == "sent":
            sent = True
            assignment.notification_sent_at = now
            assignment.notification_message_id = result.message_id
        else:
            error = result.reason
        db.flush()

    log_metric("assignment.created", 1, metadata={"contact_type": contact_type, "notified": sent})
    logger.info(
        "Step assigned",
        extra={"checkin_id": str(step.id), "contact_type": contact_type, "notified": sent},
    )
    return AssignmentCreated(assignment=assignment, public_url=url, notification_sent=sent, notification_error=error)


def list_assignments(db: Session, owner_id: UUID, checkin_id: UUID) -> List[StepAssignment]:
    step = _owned_step(db, checkin_id, owner_id, "No tienes permiso para ver estas asignaciones")
    return list(
        db.scalars(
            select(StepAssignment)
            .where(StepAssignment.checkin_id == step.id)
            .order_by(StepAssignment.created_at.desc())
        ).all()
    )


def _by_token(db: Session, token: str, now: datetime) -> StepAssignment:
    assignment = db.scalar(select(StepAssignment).where(StepAssignment.access_token == token))
    if assignment is None:
        raise AssignmentNotFound("Solicitud no encontrada")
    if now > assignment.token_expires_at:
        if assignment.status == "pending":
            assignment.status = "expired"
            db.flush()
        raise AssignmentExpired("Esta solicitud ha expirado")
    return assignment


def get_public_assignment(db: Session, token: str, now: Optional[datetime] = None) -> StepAssignment:
    """Look up an assignment by its public token. An expired pending one is marked expired."""
    return _by_token(db, token, now or datetime.now(timezone.utc))


def respond(
    db: Session,
    token: str,
    response: Optional[str],
    message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> StepAssignment:
    """Record the helper's answer; a completed answer marks the step done on the goal."""
    if response not in HELPER_RESPONSES:
        raise InvalidAssignment("response debe ser 'completed' o 'declined'")
    now = now or datetime.now(timezone.utc)
    assignment = _by_token(db, token, now)
    if assignment.status != "pending":
        raise AssignmentAlreadyAnswered("Esta solicitud ya fue respondida")

    assignment.status = response
    assignment.response_message = (message or "").strip() or None
    assignment.responded_at = now
    if response == "completed":
        # Helper work moves the goal forward but earns the owner no XP.
        step_service.complete_step(db, assignment.step, Anonymous(), now)
    db.flush()
    log_metric("assignment.answered", 1, metadata={"response": response})
    return assignment


def _owner_phone(db: Session, owner_id: UUID) -> Optional[str]:
    config = db.scalar(
        select(WhatsAppConfig).where(WhatsAppConfig.user_id == owner_id, WhatsAppConfig.is_active.is_(True))
    )
    return config.phone_number if config is not None else None


def run_assignment_reminders(
    db: Session,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> AssignmentReminderSummary:
    """
    Nudge helpers who have not answered.

    Day 2 sends a first reminder, day 5 a final one plus a notice to the owner, and
    day 7 expires the assignment and tells the owner. Only notified assignments count.
    """
    now = now or datetime.now(timezone.utc)
    summary = AssignmentReminderSummary()
    pending = db.scalars(
        select(StepAssignment).where(
            StepAssignment.status == "pending",
            StepAssignment.notification_sent_at.is_not(None),
        )
    ).all()

    for assignment in pending:
        days = (now - assignment.created_at).days
        count = assignment.reminder_count or 0
        step_title = assignment.step.step_title or "una tarea"
        url = public_url(assignment.access_token)

        if days >= FIRST_REMINDER_DAY and count == 0:
            stage, reminder_number = "first", 1
        elif days >= FINAL_REMINDER_DAY and count == 1:
            stage, reminder_number = "final", 2
        elif days >= EXPIRY_DAY and count >= 2:
            assignment.status = "expired"
            summary.expired += 1
            if _notify_owner(db, assignment, step_title, "expired", request_id):
                summary.owner_notices += 1
            continue
        else:
            continue

        body = whatsapp.build_assignment_reminder(
            assignment.helper_name, owner_name(db, assignment.assigned_by), step_title, url, reminder_number
        )
        result = whatsapp_service.send_message(
            assignment.helper_contact, body, user_id=assignment.assigned_by, request_id=request_id
        )
        if result.status != "sent":
            summary.skipped.append(str(assignment.id))
            continue
        assignment.reminder_count = reminder_number
        assignment.last_reminder_at = now
        if stage == "first":
            summary.first_reminders += 1
        else:
            summary.final_reminders += 1
            if _notify_owner(db, assignment, step_title, "no_response", request_id):
                summary.owner_notices += 1

    db.flush()
    log_metric(
        "assignment.reminders.run",
        1,
        metadata={
            "first": summary.first_reminders,
            "final": summary.final_reminders,
            "expired": summary.expired,
        },
    )
    return summary


def _notify_owner(
    db: Session,
    assignment: StepAssignment,
    step_title: str,
    reason: whatsapp.AssignmentNoticeReason,
    request_id: Optional[str],
) -> bool:
    phone = _owner_phone(db, assignment.assigned_by)
    if phone is None:
        return False
    body = whatsapp.build_owner_assignment_notice(assignment.helper_name, step_title, reason)
    result = whatsapp_service.send_message(phone, body, user_id=assignment.assigned_by, request_id=request_id)
    return result.status == "sent"
