"""Batch WhatsApp reminders sent in fixed daily slots on each user's local clock."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from typing import List, Literal, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from vicu.db.models import ActivityLog, Experiment, WhatsAppConfig
from vicu.observability.metrics import log_metric
from vicu.services import user_service, whatsapp_service

logger = logging.getLogger(__name__)

SlotType = Literal["MORNING_KICKOFF", "MIDDAY_NUDGE", "AFTERNOON_PUSH", "NIGHT_RECAP"]

SLOT_SCHEDULE: Tuple[Tuple[SlotType, time], ...] = (
    ("MORNING_KICKOFF", time(8, 0)),
    ("MIDDAY_NUDGE", time(12, 0)),
    ("AFTERNOON_PUSH", time(17, 0)),
    ("NIGHT_RECAP", time(21, 0)),
)
ACTIVE_STAGES = ("queued", "building", "testing", "adjusting")
NO_PROGRESS_EVER = 999
MAX_LISTED_GOALS = 5
MAX_NUDGED_GOALS = 3
LOG_ACTION_TYPE = "whatsapp_daily_reminder"


@dataclass(frozen=True)
class GoalDay:
    id: UUID
    title: str
    pending_steps: int
    done_today: int


@dataclass(frozen=True)
class DailyStats:
    goals: Tuple[GoalDay, ...] = ()

    @property
    def total_active(self) -> int:
        return len(self.goals)

    @property
    def total_pending_steps(self) -> int:
        return sum(goal.pending_steps for goal in self.goals)

    @property
    def total_done_today(self) -> int:
        return sum(goal.done_today for goal in self.goals)


@dataclass
class UserReminderResult:
    user_id: UUID
    status: str
    slot: Optional[SlotType] = None
    message_id: Optional[str] = None


@dataclass
class DailyRunSummary:
    forced_slot: Optional[SlotType]
    results: List[UserReminderResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for result in self.results if result.status == "sent")


def current_slot(local_now: datetime) -> Optional[SlotType]:
    """Latest slot whose start time has passed today; None before the first one."""
    matched = None
    for slot, start in SLOT_SCHEDULE:
        if local_now.time() >= start:
            matched = slot
    return matched


def _local_date(value: Optional[datetime], tz: tzinfo) -> Optional[date]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()


def _progress_dates(goal: Experiment, tz: tzinfo) -> List[date]:
    stamps = [step.done_at for step in goal.checkins if step.status == "done"]
    stamps.extend(action.done_at for action in goal.actions if action.status == "done")
    return [day for day in (_local_date(stamp, tz) for stamp in stamps) if day is not None]


def has_progress_today(goal: Experiment, today: date, tz: tzinfo) -> bool:
    return today in _progress_dates(goal, tz)


def days_without_progress(goal: Experiment, today: date, tz: tzinfo) -> int:
    """Whole days since the last completed step or action; 999 when there was none."""
    days = _progress_dates(goal, tz)
    if not days:
        return NO_PROGRESS_EVER
    return max(0, (today - max(days)).days)


def active_goals(db: Session, user_id: UUID) -> Sequence[Experiment]:
    return db.scalars(
        select(Experiment)
        .where(Experiment.user_id == user_id, Experiment.status.in_(ACTIVE_STAGES))
        .order_by(Experiment.created_at.desc())
    ).all()


def focus_goal(db: Session, user_id: UUID) -> Optional[Experiment]:
    goals = active_goals(db, user_id)
    return goals[0] if goals else None


def daily_stats(db: Session, user_id: UUID, local_now: datetime) -> DailyStats:
    today = local_now.date()
    tz = local_now.tzinfo or timezone.utc
    goals = []
    for goal in active_goals(db, user_id):
        done_today = sum(
            1
            for step in goal.checkins
            if step.status == "done" and _local_date(step.done_at, tz) == today
        )
        pending = sum(1 for step in goal.checkins if step.status == "pending")
        goals.append(GoalDay(id=goal.id, title=goal.title, pending_steps=pending, done_today=done_today))
    return DailyStats(goals=tuple(goals))


def _plural(count: int, suffix: str = "s") -> str:
    return suffix if count != 1 else ""


def build_morning_kickoff(stats: DailyStats) -> str:
    if stats.total_active == 0:
        return (
            "☀️ *Buenos días*\n\nNo tienes objetivos activos.\n\n"
            "¿Quieres empezar uno nuevo? Entra a Vicu y cuéntame qué quieres lograr."
        )
    lines = []
    for goal in stats.goals[:MAX_LISTED_GOALS]:
        if goal.pending_steps > 0:
            lines.append(f"📌 {goal.title} ({goal.pending_steps} pasos)")
        else:
            lines.append(f"✅ {goal.title}")
    total = stats.total_active
    pending_line = (
        f"Total: {stats.total_pending_steps} pasos pendientes." if stats.total_pending_steps > 0 else "¡Todo al día!"
    )
    return (
        f"☀️ *Buenos días*\n\nTienes {total} objetivo{_plural(total)} activo{_plural(total)}:\n\n"
        + "\n".join(lines)
        + f"\n\n{pending_line}\n\nResponde:\n1️⃣ Ver mi primer paso\n2️⃣ Hoy no puedo"
    )


def build_midday_nudge(stats: DailyStats) -> str:
    idle = [goal for goal in stats.goals if goal.done_today == 0]
    if not idle:
        return "💪 *¡Vas muy bien!*\n\nYa avanzaste en todos tus objetivos hoy.\n\nSigue así 🔥"
    if len(idle) == 1:
        goal = idle[0]
        pending = ""
        if goal.pending_steps > 0:
            count = goal.pending_steps
            pending = f"Tienes {count} paso{_plural(count)} pendiente{_plural(count)}.\n\n"
        return (
            f"⏰ *Recordatorio de mediodía*\n\nAún no avanzas en *{goal.title}*.\n\n{pending}"
            "Responde:\n1️⃣ Lo hago ahora\n2️⃣ Más tarde\n3️⃣ Hoy no puedo"
        )
    listed = "\n".join(f"• {goal.title}" for goal in idle[:MAX_NUDGED_GOALS])
    return (
        f"⏰ *Recordatorio de mediodía*\n\nObjetivos sin avance hoy:\n{listed}\n\n"
        "Responde:\n1️⃣ Elijo uno para avanzar\n2️⃣ Más tarde\n3️⃣ Hoy no puedo"
    )


def build_afternoon_push(stats: DailyStats) -> str:
    idle = [goal for goal in stats.goals if goal.done_today == 0]
    if not idle:
        return "🌅 *Último check del día*\n\n¡Excelente! Avanzaste en todos tus objetivos.\n\nDescansa tranquilo 😌"
    most_urgent = max(idle, key=lambda goal: goal.pending_steps)
    return (
        f"🌅 *Último empujón del día*\n\n*{most_urgent.title}* sigue sin avance.\n\n"
        "¿5 minutos para un micro-paso?\n\nResponde:\n1️⃣ Sí, lo hago\n2️⃣ Mañana será"
    )


def build_night_recap(stats: DailyStats) -> str:
    if stats.total_done_today == 0:
        return (
            "🌙 *Resumen del día*\n\nHoy no registraste avances.\n\nNo pasa nada, mañana es un nuevo día.\n\n"
            "Responde:\n1️⃣ Mañana arranco temprano\n2️⃣ Necesito replantear mis objetivos"
        )
    advanced = [goal for goal in stats.goals if goal.done_today > 0]
    idle = [goal for goal in stats.goals if goal.done_today == 0]
    progress = "\n".join(
        f"✅ {goal.title} ({goal.done_today} avance{_plural(goal.done_today)})" for goal in advanced
    )
    total = stats.total_done_today
    message = (
        f"🌙 *Resumen del día*\n\nAvanzaste en {len(advanced)} objetivo{_plural(len(advanced))}:\n{progress}\n\n"
        f"Total: {total} paso{_plural(total)} completado{_plural(total)} 🎉"
    )
    if idle:
        message += "\n\nSin avance:\n" + "\n".join(f"• {goal.title}" for goal in idle)
    return message + "\n\nResponde:\n1️⃣ Bien\n2️⃣ Podría ser mejor"


SLOT_BUILDERS = {
    "MORNING_KICKOFF": build_morning_kickoff,
    "MIDDAY_NUDGE": build_midday_nudge,
    "AFTERNOON_PUSH": build_afternoon_push,
    "NIGHT_RECAP": build_night_recap,
}


def build_slot_message(slot: SlotType, stats: DailyStats) -> str:
    return SLOT_BUILDERS[slot](stats)


def slot_sent_today(db: Session, user_id: UUID, slot: SlotType, local_now: datetime) -> bool:
    midnight = datetime.combine(local_now.date(), time(0, 0), tzinfo=local_now.tzinfo)
    rows = db.scalars(
        select(ActivityLog).where(
            ActivityLog.user_id == user_id,
            ActivityLog.action_type == LOG_ACTION_TYPE,
            ActivityLog.created_at >= midnight,
        )
    ).all()
    return any(
        (row.action_payload or {}).get("slot") == slot and (row.action_payload or {}).get("status") == "sent"
        for row in rows
    )


def run_daily_reminders(
    db: Session,
    slot: Optional[SlotType] = None,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> DailyRunSummary:
    """
    Send every linked user the message for their current slot.

    Each user's slot follows their own timezone and goes out at most once a day. A
    forced slot skips both the clock and the once-a-day guard.
    """
    now = now or datetime.now(timezone.utc)
    summary = DailyRunSummary(forced_slot=slot)
    configs = db.scalars(select(WhatsAppConfig).where(WhatsAppConfig.is_active.is_(True))).all()

    for config in configs:
        local = user_service.local_now(db, config.user_id, now)
        user_slot = slot or current_slot(local)
        if user_slot is None:
            summary.results.append(UserReminderResult(user_id=config.user_id, status="no_slot"))
            continue
        if slot is None and slot_sent_today(db, config.user_id, user_slot, local):
            summary.results.append(UserReminderResult(user_id=config.user_id, status="already_sent", slot=user_slot))
            continue

        stats = daily_stats(db, config.user_id, local)
        message = build_slot_message(user_slot, stats)
        result = whatsapp_service.send_message(
            config.phone_number, message, user_id=config.user_id, request_id=request_id
        )
        db.add(
            ActivityLog(
                user_id=config.user_id,
                experiment_id=stats.goals[0].id if stats.goals else None,
                action_type=LOG_ACTION_TYPE,
                action_payload={
                    "slot": user_slot,
                    "status": result.status,
                    "message_id": result.message_id,
                    "active_goals": stats.total_active,
                    "done_today": stats.total_done_today,
                    "request_id": request_id or "",
                },
                reason=f"Daily reminder {user_slot}",
                created_at=now,
            )
        )
        summary.results.append(
            UserReminderResult(
                user_id=config.user_id, status=result.status, slot=user_slot, message_id=result.message_id
            )
        )

    db.flush()
    log_metric("whatsapp.daily_reminders.run", 1, metadata={"users": len(configs), "sent": summary.sent})
    logger.info("Daily reminders processed", extra={"users": len(configs), "sent": summary.sent})
    return summary
