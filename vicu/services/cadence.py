"""Cadence heuristics and due-date distribution for goals and their attack plans."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

DEFAULT_SURFACE = "ritual"
DEFAULT_CONTEXT = "personal"

ACTION_CADENCE_LABELS = {
    "daily": "Diario",
    "2-3/week": "2-3x por semana",
    "weekly": "Semanal",
}
METRICS_CADENCE_LABELS = {
    "none": "Sin métricas",
    "2-3/week": "2-3x por semana",
    "weekly": "Semanal",
}
CHECKIN_CADENCE_LABELS = {
    "daily": "Diario",
    "twice_weekly": "2 veces por semana",
    "weekly": "Semanal",
}
ACTION_STATUS_LABELS = {
    "pending": "Pendiente",
    "in_progress": "En progreso",
    "done": "Hecho",
    "blocked": "Bloqueado",
}
SELF_RESULT_LABELS = {
    "alto": "Alto impacto",
    "medio": "Impacto medio",
    "bajo": "Bajo impacto",
}

EFFORT_TO_ACTION_CADENCE = {
    "low": "daily",
    "medium": "2-3/week",
    "high": "weekly",
}
EXPECTED_DAYS_BETWEEN_ACTIONS = {
    "daily": 1,
    "2-3/week": 3,
    "weekly": 7,
}
DEFAULT_DAYS_BY_TYPE = {
    "validacion": 10,
    "equipo": 21,
    "clientes": 14,
}
RITUAL_DECISION_DAYS = 28
DEFAULT_DECISION_DAYS = 14
DEFAULT_DAYS_UNTIL_DEADLINE = 30
MIN_FALLBACK_WINDOW_DAYS = 7


@dataclass(frozen=True)
class Rhythm:
    action_cadence: str
    metrics_cadence: str
    decision_cadence_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_cadence": self.action_cadence,
            "metrics_cadence": self.metrics_cadence,
            "decision_cadence_days": self.decision_cadence_days,
        }


@dataclass(frozen=True)
class ActionReminder:
    message: str
    urgency: str


def estimate_effort_level(
    surface_type: Optional[str],
    context: Optional[str],
    total_actions: Optional[int] = None,
) -> str:
    """Guess how demanding a plan is, from its size when known or its surface otherwise."""
    if total_actions is not None:
        if total_actions <= 3:
            return "low"
        if total_actions <= 7:
            return "medium"
        return "high"

    surface = surface_type or DEFAULT_SURFACE
    if surface == "ritual":
        return "low" if (context or DEFAULT_CONTEXT) == "personal" else "medium"
    if surface == "messages":
        return "medium"
    return "high"


def compute_default_rhythm(
    surface_type: Optional[str] = None,
    context: Optional[str] = None,
    experiment_type: Optional[str] = None,
    total_actions: Optional[int] = None,
) -> Rhythm:
    """
    Default execution rhythm for a goal.

    Only the surface and context matter; experiment_type is accepted so callers can
    pass the whole goal brief, and never changes the result.
    """
    surface = surface_type or DEFAULT_SURFACE
    ctx = context or DEFAULT_CONTEXT

    if surface == "landing":
        return Rhythm("2-3/week", "2-3/week", DEFAULT_DECISION_DAYS)
    if surface == "messages":
        return Rhythm("weekly", "weekly", DEFAULT_DECISION_DAYS)

    if ctx == "personal":
        effort = estimate_effort_level(surface, ctx, total_actions)
        return Rhythm(EFFORT_TO_ACTION_CADENCE[effort], "none", RITUAL_DECISION_DAYS)
    return Rhythm("2-3/week", "weekly", RITUAL_DECISION_DAYS)


def format_rhythm_description(rhythm: Rhythm) -> str:
    parts = []
    action_label = ACTION_CADENCE_LABELS.get(rhythm.action_cadence)
    if action_label:
        parts.append(f"Ejecutar {action_label.lower()}")
    if rhythm.metrics_cadence != "none":
        metrics_label = METRICS_CADENCE_LABELS.get(rhythm.metrics_cadence)
        if metrics_label:
            parts.append(f"Revisar métricas {metrics_label.lower()}")
    parts.append(f"Decidir cada {rhythm.decision_cadence_days} días")
    return " · ".join(parts)


def calculate_suggested_cadence(
    surface_type: Optional[str],
    status: Optional[str],
    deadline: Union[date, str, None] = None,
    today: Optional[date] = None,
) -> str:
    """Check-in cadence to suggest for a goal given its surface, stage and deadline."""
    today = today or date.today()
    deadline_date = _coerce_date(deadline)
    days_until = (deadline_date - today).days if deadline_date else DEFAULT_DAYS_UNTIL_DEADLINE

    if surface_type == "ritual":
        if days_until <= 14:
            return "daily"
        if days_until <= 60:
            return "twice_weekly"
        return "weekly"
    if surface_type == "landing":
        if status in ("building", "testing"):
            return "twice_weekly"
        if status == "adjusting":
            return "weekly"
        return "twice_weekly"
    if surface_type == "messages":
        return "twice_weekly" if days_until <= 14 else "weekly"
    return "twice_weekly"


def default_days_for_experiment(experiment_type: Optional[str], surface_type: Optional[str] = None) -> int:
    if surface_type == "ritual":
        return RITUAL_DECISION_DAYS
    return DEFAULT_DAYS_BY_TYPE.get(experiment_type or "", DEFAULT_DAYS_BY_TYPE["clientes"])


def calculate_suggested_due_dates(
    total_actions: int,
    deadline: Union[date, str, None] = None,
    experiment_type: Optional[str] = None,
    surface_type: Optional[str] = None,
    today: Optional[date] = None,
) -> List[date]:
    """
    Spread due dates between today and the deadline on a square-root curve.

    Early actions cluster near today and later ones stretch toward the end date.
    """
    if total_actions <= 0:
        return []

    today = today or date.today()
    end_date = _coerce_date(deadline)
    if end_date is None:
        end_date = today + timedelta(days=default_days_for_experiment(experiment_type, surface_type))
    if end_date <= today:
        end_date = today + timedelta(days=MIN_FALLBACK_WINDOW_DAYS)

    total_days = (end_date - today).days
    dates: List[date] = []
    for index in range(total_actions):
        progress = math.sqrt(index / (total_actions - 1)) if total_actions > 1 else 0.0
        dates.append(today + timedelta(days=_round_half_up(progress * total_days)))
    return dates


def add_due_dates_to_attack_plan(
    plan: Dict[str, Any],
    deadline: Union[date, str, None] = None,
    experiment_type: Optional[str] = None,
    surface_type: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Return a copy of an attack plan with suggested_due_date set on every action, in plan order."""
    channels = plan.get("channels") or []
    total = sum(len(channel.get("actions") or []) for channel in channels)
    due_dates = calculate_suggested_due_dates(total, deadline, experiment_type, surface_type, today)

    cursor = 0
    dated_channels = []
    for channel in channels:
        dated_actions = []
        for action in channel.get("actions") or []:
            dated_actions.append({**action, "suggested_due_date": due_dates[cursor].isoformat()})
            cursor += 1
        dated_channels.append({**channel, "actions": dated_actions})
    return {**plan, "channels": dated_channels}


def next_action_reminder(
    rhythm: Rhythm,
    last_action_date: Optional[date],
    today: Optional[date] = None,
) -> ActionReminder:
    today = today or date.today()
    if last_action_date is None:
        return ActionReminder("Aún no has ejecutado ninguna acción. ¡Empieza hoy!", "high")

    expected = EXPECTED_DAYS_BETWEEN_ACTIONS.get(rhythm.action_cadence, 3)
    days_since = (today - last_action_date).days

    if days_since <= 0:
        return ActionReminder("¡Buen trabajo hoy! Descansa y vuelve mañana.", "low")
    if days_since < expected:
        remaining = expected - days_since
        suffix = "día" if remaining == 1 else "días"
        return ActionReminder(f"Tu próxima acción es en {remaining} {suffix}.", "low")
    if days_since == expected:
        return ActionReminder("Hoy toca ejecutar. ¿Qué acción harás?", "medium")
    suffix = "día" if days_since == 1 else "días"
    return ActionReminder(f"Llevas {days_since} {suffix} sin ejecutar. Retoma el ritmo.", "high")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _coerce_date(value: Union[date, str, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None
