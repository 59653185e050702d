"""WhatsApp linkage, Kapso webhook and reminder routes."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from vicu.api.schemas.whatsapp import (
    DailyReminderPreviewResponse,
    DailyReminderResult,
    DailyReminderRunResponse,
    SendReminderRequest,
    SendReminderResponse,
    SlotScheduleItem,
    WebhookResponse,
    WhatsAppConfigRequest,
    WhatsAppConfigResponse,
)
from vicu.core.config import settings
from vicu.core.identity import Authenticated, Identity, get_identity, identity_user_id, require_cron_secret
from vicu.db.deps import get_db
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import reminder_runner, whatsapp, whatsapp_service
from vicu.services.reminder_runner import SlotType
from vicu.services.whatsapp import InvalidPhoneNumber

router = APIRouter()
logger = logging.getLogger(__name__)

GREETING_PREFIX = "¡Hola! 👋 Soy Vicu.\n\n"


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/whatsapp/config", response_model=WhatsAppConfigResponse, tags=["whatsapp"])
def save_whatsapp_config(
    payload: WhatsAppConfigRequest,
    http_request: Request,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> WhatsAppConfigResponse:
    """Link the caller's phone number for reminders."""
    if not isinstance(identity, Authenticated):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inicia sesión para conectar WhatsApp")
    if not payload.phone_number or not payload.phone_number.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Número de teléfono requerido")

    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "whatsapp.config.save",
            metadata={"enabled": payload.enabled},
            user_id=str(identity.user_id),
            request_id=request_id,
        ):
            config = whatsapp_service.save_config(db, identity.user_id, payload.phone_number, payload.enabled)
            db.commit()
    except InvalidPhoneNumber as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception:
        db.rollback()
        raise

    log_metric("whatsapp.config.success", 1, metadata={"enabled": payload.enabled})
    return WhatsAppConfigResponse(
        phone_number=config.phone_number,
        is_active=config.is_active,
        message="WhatsApp conectado" if config.is_active else "Recordatorios por WhatsApp desactivados",
        request_id=request_id or "",
    )


@router.get("/kapso/webhook", response_class=PlainTextResponse, tags=["whatsapp"])
def verify_kapso_webhook(
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Subscription handshake: echo the challenge when the verify token matches."""
    if hub_mode == "subscribe" and hub_verify_token == settings.kapso_webhook_verify_token:
        return PlainTextResponse(hub_challenge or "")
    logger.warning("Webhook verification failed", extra={"mode": hub_mode})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verificación fallida")


@router.post("/kapso/webhook", response_model=WebhookResponse, tags=["whatsapp"])
def receive_kapso_webhook(
    http_request: Request,
    body: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
) -> WebhookResponse:
    """
    Handle an inbound WhatsApp message.

    Unknown senders get onboarding instructions, greetings get the current task, and
    anything else is read as a reply to the pending action when one exists.
    """
    request_id = getattr(http_request.state, "request_id", None)
    signature = http_request.headers.get("X-Webhook-Signature")
    if not whatsapp.verify_webhook_signature(body, signature):
        log_metric("whatsapp.webhook.invalid_signature", 1)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Firma inválida")
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="JSON inválido")

    message = whatsapp.extract_inbound_message(payload)
    if message is None:
        return WebhookResponse(status="ignored")

    config = whatsapp_service.find_config_by_phone(db, message.sender)
    if config is None:
        whatsapp_service.send_message(
            message.sender, whatsapp.ONBOARDING_MESSAGE, user_id=None, request_id=request_id
        )
        log_metric("whatsapp.webhook.unknown_sender", 1)
        return WebhookResponse(status="unknown_sender")

    try:
        with trace(
            "whatsapp.webhook",
            metadata={"chars": len(message.text)},
            user_id=str(config.user_id),
            request_id=request_id,
        ):
            if whatsapp.is_greeting(message.text):
                text, _ = whatsapp_service.prepare_actionable_message(db, config.user_id, request_id=request_id)
                result = whatsapp_service.send_message(
                    config.phone_number, GREETING_PREFIX + text, user_id=config.user_id, request_id=request_id
                )
                db.commit()
                log_metric("whatsapp.webhook.greeting", 1)
                return WebhookResponse(status="greeted", reply_status=result.status)

            pending = whatsapp_service.get_pending_action(db, config.user_id)
            if pending is not None:
                outcome = whatsapp_service.process_reply(db, config, pending, message.text, request_id=request_id)
                result = whatsapp_service.send_message(
                    config.phone_number, outcome.reply_message, user_id=config.user_id, request_id=request_id
                )
                db.commit()
                return WebhookResponse(
                    status="processed",
                    action=outcome.action,
                    reply_status=result.status,
                    new_streak=outcome.new_streak,
                )

            text, target = whatsapp_service.prepare_actionable_message(db, config.user_id, request_id=request_id)
            reply = text if target is not None else whatsapp.RECEIVED_MESSAGE
            result = whatsapp_service.send_message(
                config.phone_number, reply, user_id=config.user_id, request_id=request_id
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("whatsapp.webhook.no_pending", 1)
    return WebhookResponse(status="new_task" if target is not None else "received", reply_status=result.status)


@router.post("/kapso/send-reminder", response_model=SendReminderResponse, tags=["whatsapp"])
def send_reminder(
    http_request: Request,
    payload: Optional[SendReminderRequest] = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> SendReminderResponse:
    """Send the most urgent task to a user; called by the external reminder cron."""
    request_id = getattr(http_request.state, "request_id", None)
    user_id = (payload.user_id if payload else None) or identity_user_id(identity)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id requerido")

    try:
        with trace("whatsapp.reminder", user_id=str(user_id), request_id=request_id):
            outcome = whatsapp_service.send_reminder(db, user_id, request_id=request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("whatsapp.reminder.sent", 1, metadata={"status": outcome.status})
    notification = outcome.notification
    return SendReminderResponse(
        status=outcome.status,
        experiment_id=outcome.experiment_id,
        message=outcome.message,
        message_id=notification.message_id if notification else None,
        reason=notification.reason if notification else None,
        request_id=request_id or "",
    )


@router.get("/kapso/run-daily-reminders", response_model=DailyReminderPreviewResponse, tags=["whatsapp"])
def preview_daily_reminders() -> DailyReminderPreviewResponse:
    """Current slot on the default timezone plus the fixed daily schedule."""
    zone = ZoneInfo(settings.default_timezone)
    local = datetime.now(timezone.utc).astimezone(zone)
    return DailyReminderPreviewResponse(
        timezone=zone.key,
        local_time=local.strftime("%H:%M"),
        current_slot=reminder_runner.current_slot(local),
        schedule=[
            SlotScheduleItem(slot=slot, starts_at=start.strftime("%H:%M"))
            for slot, start in reminder_runner.SLOT_SCHEDULE
        ],
    )


@router.post(
    "/kapso/run-daily-reminders",
    response_model=DailyReminderRunResponse,
    tags=["whatsapp"],
    dependencies=[Depends(require_cron_secret)],
)
def run_daily_reminders(
    http_request: Request,
    slot: Optional[SlotType] = Query(default=None),
    db: Session = Depends(get_db),
) -> DailyReminderRunResponse:
    """
    Batch entry point for the scheduler.

    Without a slot each user gets the message for their local time at most once a
    day; a forced slot goes to everyone right away.
    """
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("whatsapp.daily_reminders", metadata={"forced_slot": slot}, request_id=request_id):
            summary = reminder_runner.run_daily_reminders(db, slot=slot, request_id=request_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    log_metric("whatsapp.daily_reminders.success", 1, metadata={"sent": summary.sent})
    return DailyReminderRunResponse(
        forced_slot=summary.forced_slot,
        processed=len(summary.results),
        sent=summary.sent,
        results=[
            DailyReminderResult(
                user_id=result.user_id, status=result.status, slot=result.slot, message_id=result.message_id
            )
            for result in summary.results
        ],
        request_id=request_id or "",
    )
