"""Rule-based advice from a goal's execution metrics."""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from vicu.services.cadence import DEFAULT_DECISION_DAYS, RITUAL_DECISION_DAYS, Rhythm

TAG_COLORS = {
    "keep_building": "blue",
    "ready_to_test": "purple",
    "keep_testing": "purple",
    "adjust": "amber",
    "achieved": "green",
    "pause": "zinc",
    "discard": "red",
    "no_data": "zinc",
}

MIN_VISITS_TO_JUDGE = 10
HALF_PLAN = 0.5
TRACTION_CONVERSION = 0.15
TRACTION_MIN_LEADS = 5
MEDIUM_CONVERSION = 0.05


@dataclass(frozen=True)
class ExperimentMetrics:
    visits: int = 0
    leads: int = 0
    total_actions: int = 0
    done_actions: int = 0


@dataclass(frozen=True)
class Recommendation:
    tag: str
    tag_label: str
    title: str
    text: str
    steps: List[str] = field(default_factory=list)

    @property
    def color(self) -> str:
        return TAG_COLORS.get(self.tag, "zinc")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag": self.tag,
            "tag_label": self.tag_label,
            "title": self.title,
            "text": self.text,
            "color": self.color,
            "steps": list(self.steps),
        }


@dataclass(frozen=True)
class ProgressInfo:
    done: int
    total: int
    ratio: float
    message: str


def calculate_landing_recommendation(
    visits: int,
    leads: int,
    total_actions: int,
    done_actions: int,
) -> Recommendation:
    ratio = done_actions / total_actions if total_actions > 0 else 0.0
    conversion = leads / visits if visits > 0 else 0.0
    conversion_percent = f"{conversion * 100:.1f}"

    if ratio < HALF_PLAN or visits < MIN_VISITS_TO_JUDGE:
        steps: List[str] = []
        if done_actions == 0:
            steps.append("Completa al menos 1 acción del plan hoy")
        elif ratio < HALF_PLAN:
            steps.append(f"Completa {_actions_to_half(total_actions, done_actions)} acciones más")
        if visits < MIN_VISITS_TO_JUDGE:
            steps.append("Comparte tu landing en 2-3 canales distintos")
        steps.append("Revisa las métricas mañana")
        return Recommendation(
            tag="keep_building",
            tag_label="Seguir construyendo",
            title="Sigue ejecutando el plan de ataque.",
            text=f"Has completado {done_actions}/{total_actions} acciones y tienes {visits} visitas.",
            steps=steps,
        )

    if ratio == 1 and visits < MIN_VISITS_TO_JUDGE:
        return Recommendation(
            tag="keep_testing",
            tag_label="Traer más tráfico",
            title="Plan completado, pero falta tráfico.",
            text=f"Solo tienes {visits} visitas. Necesitas más datos.",
            steps=[
                "Repite las acciones que mejor funcionaron",
                "Prueba un canal nuevo que no hayas usado",
                "Espera a tener 10-20 visitas antes de decidir",
            ],
        )

    if conversion >= TRACTION_CONVERSION and leads >= TRACTION_MIN_LEADS:
        return Recommendation(
            tag="achieved",
            tag_label="Logrado",
            title="Este objetivo tiene tracción.",
            text=f"Conversión de {conversion_percent}% con {leads} leads.",
            steps=[
                "Duplica el esfuerzo en el canal que más convirtió",
                "Contacta a tus leads en las próximas 24h",
                "Considera marcar el objetivo como 'Logrado'",
            ],
        )

    if conversion >= MEDIUM_CONVERSION:
        return Recommendation(
            tag="adjust",
            tag_label="Ajustando",
            title="Conversión media, hay potencial.",
            text=f"Conversión de {conversion_percent}% con {leads} leads.",
            steps=[
                "Revisa si tu promesa es lo suficientemente clara",
                "Prueba un CTA diferente en tu landing",
                "Corre otra ronda de tráfico con el nuevo copy",
            ],
        )

    return Recommendation(
        tag="pause",
        tag_label="Pausar",
        title="Conversión baja, considera replantear.",
        text=f"Solo {conversion_percent}% de conversión tras {visits} visitas.",
        steps=[
            "Habla con 3 personas de tu audiencia objetivo",
            "Pregunta si la promesa les parece atractiva",
            "Replantea la propuesta antes de invertir más",
        ],
    )


SELF_RESULT_RECOMMENDATIONS = {
    "alto": Recommendation(
        tag="achieved",
        tag_label="Logrado",
        title="Excelente resultado. Considera marcarlo como logrado.",
        text="El objetivo tuvo alto impacto.",
        steps=[
            "Documenta qué funcionó mejor",
            "Repite el proceso con más personas",
            "Considera crear un sistema para hacerlo recurrente",
        ],
    ),
    "medio": Recommendation(
        tag="adjust",
        tag_label="Ajustando",
        title="Resultado medio. Hay oportunidad de mejora.",
        text="Hay potencial, pero se puede mejorar.",
        steps=[
            "Identifica qué acciones tuvieron mejor respuesta",
            "Ajusta el mensaje o enfoque",
            "Corre otra ronda con las mejoras",
        ],
    ),
    "bajo": Recommendation(
        tag="pause",
        tag_label="Pausar",
        title="Resultado bajo. Considera cambiar de enfoque.",
        text="El objetivo no dio los resultados esperados.",
        steps=[
            "Pregunta a 2-3 personas por qué no funcionó",
            "Considera si el problema era el formato o el contenido",
            "Prueba algo completamente diferente",
        ],
    ),
}


def calculate_non_landing_recommendation(
    total_actions: int,
    done_actions: int,
    self_result: Optional[str] = None,
) -> Recommendation:
    ratio = done_actions / total_actions if total_actions > 0 else 0.0
    pending = total_actions - done_actions

    if ratio < HALF_PLAN:
        missing = _actions_to_half(total_actions, done_actions)
        first_step = f"Completa {missing} acciones más" if missing > 0 else "Completa al menos 1 acción del plan hoy"
        return Recommendation(
            tag="keep_building",
            tag_label="Seguir construyendo",
            title="Sigue ejecutando el plan.",
            text=f"Has ejecutado {done_actions}/{total_actions} acciones.",
            steps=[
                first_step,
                "Dedica 15-30 minutos hoy a ejecutar",
                "Marca las acciones como 'Hecho' cuando termines",
            ],
        )

    if ratio < 1:
        return Recommendation(
            tag="keep_building",
            tag_label="Seguir construyendo",
            title="Ya probaste varias acciones.",
            text=f"Te faltan {pending} acciones para completar el plan.",
            steps=[
                f"Completa las {pending} acciones restantes",
                "Evalúa cómo te sientes con los resultados",
                "Indica tu evaluación cuando termines",
            ],
        )

    rated = SELF_RESULT_RECOMMENDATIONS.get(self_result or "")
    if rated is not None:
        return rated

    return Recommendation(
        tag="no_data",
        tag_label="Evalúa tu resultado",
        title="Plan completado. ¿Cómo te fue?",
        text="Indica tu percepción del resultado para obtener una recomendación.",
        steps=[
            "Reflexiona: ¿lograste lo que querías?",
            "Selecciona Alto/Medio/Bajo impacto arriba",
            "Vicu te dará el siguiente paso",
        ],
    )


def calculate_recommendation(
    metrics: ExperimentMetrics,
    surface_type: str = "landing",
    self_result: Optional[str] = None,
    rhythm: Optional[Rhythm] = None,
    created_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Recommendation:
    """
    Dispatch to the landing or non-landing rules, then apply the decision-time nudge.

    Once the decision window has elapsed, a recommendation that still says "keep going"
    keeps its tag but swaps title and steps for a prompt to decide.
    """
    days_since_start = 0
    if created_at is not None:
        now = now or datetime.now(timezone.utc)
        days_since_start = math.floor((_as_utc(now) - _as_utc(created_at)).total_seconds() / 86400)

    decision_days = (rhythm.decision_cadence_days if rhythm else None) or (
        RITUAL_DECISION_DAYS if surface_type == "ritual" else DEFAULT_DECISION_DAYS
    )
    is_decision_time = days_since_start >= decision_days

    if surface_type == "landing":
        base = calculate_landing_recommendation(
            metrics.visits, metrics.leads, metrics.total_actions, metrics.done_actions
        )
        if is_decision_time and base.tag in ("keep_building", "keep_testing"):
            return replace(
                base,
                title=f"Han pasado {decision_days} días. Es momento de decidir.",
                steps=[
                    "Revisa los datos que tienes hasta ahora",
                    "Decide si seguir en marcha, ajustar el enfoque o poner en pausa",
                    f"Si los resultados no son claros, considera otro ciclo de {decision_days} días",
                ],
            )
        return base

    base = calculate_non_landing_recommendation(metrics.total_actions, metrics.done_actions, self_result)
    if is_decision_time and base.tag == "keep_building":
        return replace(
            base,
            title=f"Han pasado {decision_days} días. Evalúa tu progreso.",
            steps=[
                "Reflexiona: ¿estás viendo los resultados esperados?",
                "Completa las acciones pendientes si puedes",
                "Indica tu evaluación para continuar",
            ],
        )
    return base


def progress_message(done_actions: int, total_actions: int) -> ProgressInfo:
    ratio = done_actions / total_actions if total_actions > 0 else 0.0
    if done_actions == 0:
        message = "Aún no empiezas el plan. Ejecuta al menos 1 acción para tener primeras señales."
    elif ratio < HALF_PLAN:
        message = (
            f"Has ejecutado {done_actions}/{total_actions} acciones. "
            "Completa al menos la mitad del plan antes de tomar una decisión."
        )
    elif ratio < 1:
        message = (
            f"Ya probaste varias acciones ({done_actions}/{total_actions}). "
            "Termina el plan para poder evaluarlo bien."
        )
    else:
        message = (
            "Plan completado. Usa la recomendación de Vicu para decidir si seguir en marcha, "
            "ajustar el enfoque o poner en pausa este objetivo."
        )
    return ProgressInfo(done=done_actions, total=total_actions, ratio=ratio, message=message)


def _actions_to_half(total_actions: int, done_actions: int) -> int:
    return math.ceil(total_actions * HALF_PLAN) - done_actions


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
