"""WhatsApp linkage, pending actions, reply processing and reminders."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from vicu.core.config import settings
from vicu.core.identity import Authenticated
from vicu.db.models import (
    ActivityLog,
    Experiment,
    ExperimentCheckin,
    User,
    WhatsAppConfig,
    WhatsAppPendingAction,
)
from vicu.observability.metrics import log_metric
from vicu.observability.tracing import trace
from vicu.services import advice_generator, step_service, whatsapp
from vicu.services.notifications.base import NotificationResult
from vicu.services.notifications.factory import get_notification_service
from vicu.services.user_service import get_or_create_user
from vicu.services.whatsapp import ActionableGoal, ReplyAction

logger = logging.getLogger(__name__)

ACTIVE_STAGES = ("queued", "building", "testing", "adjusting")
NEVER_CHECKED_IN_DAYS = 999
MAX_CANDIDATE_GOALS = 10


@dataclass
class GoalCandidate:
    goal: Experiment
    pending_step: Optional[ExperimentCheckin]
    days_without_progress: int

    @property
    def urgency(self) -> int:
        return self.days_without_progress * 10 + (5 if self.pending_step is not None else 0)


@dataclass
class ReplyOutcome:
    action: ReplyAction
    reply_message: str
    new_streak: Optional[int] = None
    alternative_action: Optional[str] = None


@dataclass
class ReminderOutcome:
    status: str
    message: Optional[str] = None
    experiment_id: Optional[UUID] = None
    notification: Optional[NotificationResult] = None


def save_config(db: Session, user_id: UUID, raw_phone: str, enabled: bool = True) -> WhatsAppConfig:
    """Link (or relink) a user's number. Raises InvalidPhoneNumber for empty input."""
    phone = whatsapp.normalize_phone_number(raw_phone)
    get_or_create_user(db, user_id)
    config = db.scalar(select(WhatsAppConfig).where(WhatsAppConfig.user_id == user_id))
    if config is None:
        config = WhatsAppConfig(user_id=user_id, phone_number=phone, is_active=enabled)
        db.add(config)
    else:
        config.phone_number = phone
        config.is_active = enabled
    db.flush()
    return config


def find_config_by_phone(db: Session, sender: str) -> Optional[WhatsAppConfig]:
    candidates = whatsapp.phone_lookup_candidates(sender)
    return db.scalar(
        select(WhatsAppConfig)
        .where(WhatsAppConfig.phone_number.in_(candidates), WhatsAppConfig.is_active.is_(True))
        .limit(1)
    )


def save_pending_action(
    db: Session,
    user_id: UUID,
    experiment_id: Optional[UUID],
    checkin_id: Optional[UUID],
    action_text: str,
    is_ai_generated: bool,
    now: Optional[datetime] = None,
) -> WhatsAppPendingAction:
    """Store the action the user is expected to answer; older pending ones are skipped."""
    now = now or datetime.now(timezone.utc)
    db.execute(
        update(WhatsAppPendingAction)
        .where(WhatsAppPendingAction.user_id == user_id, WhatsAppPendingAction.status == "pending")
        .values(status="skipped")
        .execution_options(synchronize_session="fetch")
    )
    pending = WhatsAppPendingAction(
        user_id=user_id,
        experiment_id=experiment_id,
        checkin_id=checkin_id,
        action_text=action_text,
        is_ai_generated=is_ai_generated,
        status="pending",
        expires_at=now + timedelta(hours=settings.pending_action_ttl_hours),
    )
    db.add(pending)
    db.flush()
    return pending


def get_pending_action(db: Session, user_id: UUID, now: Optional[datetime] = None) -> Optional[WhatsAppPendingAction]:
    now = now or datetime.now(timezone.utc)
    return db.scalar(
        select(WhatsAppPendingAction)
        .where(
            WhatsAppPendingAction.user_id == user_id,
            WhatsAppPendingAction.status == "pending",
            WhatsAppPendingAction.expires_at > now,
        )
        .order_by(WhatsAppPendingAction.created_at.desc())
        .limit(1)
    )


def process_reply(
    db: Session,
    config: WhatsAppConfig,
    pending: WhatsAppPendingAction,
    text: str,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> ReplyOutcome:
    """Apply a 1/2/3 style reply to the pending action."""
    now = now or datetime.now(timezone.utc)
    action = whatsapp.parse_user_response(text)
    goal = db.get(Experiment, pending.experiment_id) if pending.experiment_id else None
    identity = Authenticated(user_id=config.user_id)

    if action == "done":
        new_streak = None
        step = db.get(ExperimentCheckin, pending.checkin_id) if pending.checkin_id else None
        if step is None and goal is not None:
            step = ExperimentCheckin(
                experiment_id=goal.id,
                user_id=config.user_id,
                for_stage=goal.status,
                status="pending",
                step_title=pending.action_text,
                step_description="Micro-paso completado vía WhatsApp",
                effort="muy_pequeno",
                source="whatsapp",
            )
            goal.checkins.append(step)
            db.flush()
        if step is not None:
            completion = step_service.complete_step(db, step, identity, now)
            new_streak = completion.goal.streak_days
        pending.status = "done"
        db.flush()
        log_metric("whatsapp.reply.done", 1)
        return ReplyOutcome(action="done", reply_message=whatsapp.build_done_reply(new_streak or 1), new_streak=new_streak)

    if action == "later":
        if pending.is_ai_generated and pending.checkin_id is None and goal is not None:
            step_service.create_manual_step(
                db,
                goal,
                pending.action_text,
                step_description="Micro-paso sugerido vía WhatsApp",
                effort="muy_pequeno",
                source="whatsapp",
            )
        pending.status = "skipped"
        db.flush()
        log_metric("whatsapp.reply.later", 1)
        return ReplyOutcome(action="later", reply_message=whatsapp.LATER_REPLY)

    goal_title = goal.title if goal is not None else "tu objetivo"
    alternative = advice_generator.generate_alternative_action(goal_title, pending.action_text, request_id=request_id)
    pending.status = "alternative_requested"
    db.flush()
    save_pending_action(db, config.user_id, pending.experiment_id, None, alternative, True, now)
    log_metric("whatsapp.reply.stuck", 1)
    return ReplyOutcome(
        action="stuck",
        reply_message=whatsapp.build_alternative_reply(alternative),
        alternative_action=alternative,
    )


def rank_goals(db: Session, user_id: UUID, now: Optional[datetime] = None) -> List[GoalCandidate]:
    """Active goals ordered by urgency: idle days times ten, plus five when a step is waiting."""
    now = now or datetime.now(timezone.utc)
    goals = db.scalars(
        select(Experiment)
        .where(Experiment.user_id == user_id, Experiment.status.in_(ACTIVE_STAGES))
        .order_by(Experiment.created_at.desc())
        .limit(MAX_CANDIDATE_GOALS)
    ).all()

    candidates = []
    for goal in goals:
        pending_steps = [step for step in goal.checkins if step.status == "pending"]
        if goal.last_checkin_at is not None:
            idle_days = int((now - goal.last_checkin_at).total_seconds() // 86400)
        else:
            idle_days = NEVER_CHECKED_IN_DAYS
        candidates.append(
            GoalCandidate(goal=goal, pending_step=pending_steps[0] if pending_steps else None, days_without_progress=idle_days)
        )
    candidates.sort(key=lambda candidate: candidate.urgency, reverse=True)
    return candidates


def prepare_actionable_message(
    db: Session,
    user_id: UUID,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> tuple[str, Optional[GoalCandidate]]:
    """Pick the most urgent goal, store its pending action and build the prompt text."""
    candidates = rank_goals(db, user_id, now)
    if not candidates:
        return whatsapp.build_actionable_message(None), None

    target = candidates[0]
    if target.pending_step is not None:
        action_text = target.pending_step.step_title
        checkin_id = target.pending_step.id
        is_ai_generated = False
    else:
        action_text = advice_generator.generate_micro_action(target.goal.title, request_id=request_id)
        checkin_id = None
        is_ai_generated = True

    save_pending_action(db, user_id, target.goal.id, checkin_id, action_text, is_ai_generated, now)
    user = db.get(User, user_id)
    message = whatsapp.build_actionable_message(
        ActionableGoal(
            title=target.goal.title,
            action_text=action_text,
            days_without_progress=target.days_without_progress,
            streak_days=target.goal.streak_days or 0,
        ),
        user_name=user.display_name if user else None,
    )
    return message, target


def send_message(to: str, body: str, *, user_id: Optional[UUID], request_id: Optional[str]) -> NotificationResult:
    if not settings.notifications_enabled:
        log_metric("notifications.skipped", 1, metadata={"channel": "whatsapp"})
        return NotificationResult(status="skipped", reason="notifications disabled")
    service = get_notification_service()
    with trace(
        "notifications.whatsapp",
        metadata={"provider": settings.notifications_provider, "chars": len(body)},
        user_id=str(user_id) if user_id else None,
        request_id=request_id,
    ):
        result = service.send_text(to=to, body=body, request_id=request_id)
    log_metric("notifications.sent", 1, metadata={"provider": settings.notifications_provider, "status": result.status})
    return result


def send_reminder(
    db: Session,
    user_id: UUID,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> ReminderOutcome:
    """Send the most urgent task to a linked user and audit the attempt."""
    config = db.scalar(
        select(WhatsAppConfig).where(WhatsAppConfig.user_id == user_id, WhatsAppConfig.is_active.is_(True))
    )
    if config is None:
        return ReminderOutcome(status="no_config")

    message, target = prepare_actionable_message(db, user_id, now, request_id)
    if target is None:
        return ReminderOutcome(status="no_active_goals", message=message)

    result = send_message(config.phone_number, message, user_id=user_id, request_id=request_id)
    db.add(
        ActivityLog(
            user_id=user_id,
            experiment_id=target.goal.id,
            action_type="whatsapp_reminder",
            action_payload={
                "urgency": target.urgency,
                "days_without_progress": target.days_without_progress,
                "result": {"status": result.status, "reason": result.reason, "message_id": result.message_id},
                "request_id": request_id or "",
            },
            reason="Reminder dispatched" if result.status != "skipped" else "Reminder skipped",
        )
    )
    db.flush()
    return ReminderOutcome(status=result.status, message=message, experiment_id=target.goal.id, notification=result)
