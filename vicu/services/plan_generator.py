"""LLM-backed step and attack-plan generation with deterministic fallbacks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from vicu.observability.metrics import log_metric
from vicu.services import llm_client, prompts
from vicu.services.llm_client import GenerationFailure

logger = logging.getLogger(__name__)

MAX_STEPS = 3
MAX_CHANNELS = 3
MAX_ACTIONS_PER_CHANNEL = 2
MORE_ACTIONS_COUNT = 2

Effort = Literal["muy_pequeno", "pequeno", "medio"]
EFFORT_VALUES = ("muy_pequeno", "pequeno", "medio")
DESCRIPTION_FALLBACK = "Describe brevemente qué harás en este paso para acercarte a tu objetivo."


class StepDraft(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    effort: Effort = "pequeno"

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("effort", mode="before")
    @classmethod
    def _coerce_effort(cls, value: Any) -> str:
        return value if value in EFFORT_VALUES else "pequeno"


class StepList(BaseModel):
    steps: List[StepDraft] = Field(..., min_length=1)


class ActionDraft(BaseModel):
    action_type: str = "mensaje_directo"
    title: str = Field(..., min_length=1)
    content: str = ""
    suggested_due_date: Optional[str] = None


class ChannelPlan(BaseModel):
    channel: str = Field(..., min_length=1)
    actions: List[ActionDraft] = Field(..., min_length=1)


class AttackPlan(BaseModel):
    channels: List[ChannelPlan] = Field(..., min_length=1)

    def capped(self) -> "AttackPlan":
        return AttackPlan(
            channels=[
                ChannelPlan(channel=channel.channel, actions=channel.actions[:MAX_ACTIONS_PER_CHANNEL])
                for channel in self.channels[:MAX_CHANNELS]
            ]
        )


class ActionBatch(BaseModel):
    actions: List[ActionDraft] = Field(..., min_length=1)


@dataclass
class ExperimentBrief:
    title: str
    description: str
    experiment_type: str = "clientes"
    surface_type: str = "landing"
    target_audience: Optional[str] = None
    promise: Optional[str] = None
    desired_action: Optional[str] = None


@dataclass
class GeneratedSteps:
    steps: List[StepDraft]
    fallback_used: bool


@dataclass
class GeneratedPlan:
    plan: AttackPlan
    fallback_used: bool


CATEGORY_KEYWORDS: Dict[str, set] = {
    "health": {
        "salud", "correr", "gym", "gimnasio", "ejercicio", "peso", "dieta", "dormir",
        "yoga", "entrenar", "health", "run", "workout", "fitness",
    },
    "business": {
        "clientes", "ventas", "negocio", "emprendimiento", "startup", "producto", "lanzar",
        "marketing", "ingresos", "business", "sales", "customers",
    },
    "learning": {
        "aprender", "estudiar", "curso", "idioma", "inglés", "ingles", "leer", "libro",
        "programar", "examen", "learn", "study",
    },
    "habits": {
        "hábito", "habito", "rutina", "meditar", "diario", "journal", "madrugar",
        "disciplina", "habit", "routine",
    },
}

FALLBACK_STEPS: Dict[str, List[Dict[str, str]]] = {
    "health": [
        {
            "title": "Prepara tu ropa y agenda la primera sesión",
            "description": "Deja lista la ropa o el equipo y bloquea 20 minutos en tu calendario.",
            "effort": "muy_pequeno",
        },
        {
            "title": "Haz una sesión corta de 15 minutos",
            "description": "Camina, trota o estira 15 minutos a un ritmo cómodo.",
            "effort": "pequeno",
        },
        {
            "title": "Anota cómo te sentiste",
            "description": "Registra energía del 1 al 10 y una cosa que ajustarías mañana.",
            "effort": "muy_pequeno",
        },
    ],
    "business": [
        {
            "title": "Escribe a quién le resuelves el problema",
            "description": "Define en una frase tu cliente ideal y el dolor principal que atiendes.",
            "effort": "muy_pequeno",
        },
        {
            "title": "Haz una lista de 10 posibles clientes",
            "description": "Anota nombres concretos de personas o empresas que encajan con ese perfil.",
            "effort": "pequeno",
        },
        {
            "title": "Envía tu primer mensaje a 3 de ellos",
            "description": "Cuéntales qué estás haciendo y pregunta si les interesa conversar.",
            "effort": "pequeno",
        },
    ],
    "learning": [
        {
            "title": "Elige un recurso principal",
            "description": "Escoge un curso, libro o canal y guarda el enlace donde lo veas a diario.",
            "effort": "muy_pequeno",
        },
        {
            "title": "Estudia 20 minutos sin distracciones",
            "description": "Pon el teléfono lejos y avanza en la primera lección o capítulo.",
            "effort": "pequeno",
        },
        {
            "title": "Explica en 3 líneas lo que aprendiste",
            "description": "Escribe un resumen breve como si se lo contaras a un amigo.",
            "effort": "muy_pequeno",
        },
    ],
    "habits": [
        {
            "title": "Define el disparador de tu hábito",
            "description": "Decide después de qué acción diaria lo harás (por ejemplo, después del café).",
            "effort": "muy_pequeno",
        },
        {
            "title": "Haz la versión de 2 minutos hoy",
            "description": "Practica una versión mínima del hábito para demostrar que cabe en tu día.",
            "effort": "muy_pequeno",
        },
        {
            "title": "Marca el día en tu registro",
            "description": "Anota un check en un calendario o app para empezar la racha.",
            "effort": "muy_pequeno",
        },
    ],
    "generic": [
        {
            "title": "Define el primer paso concreto para tu objetivo",
            "description": "Escribe qué acción específica puedes hacer en los próximos 5 minutos.",
            "effort": "muy_pequeno",
        },
        {
            "title": "Prepara lo que necesitas para empezar",
            "description": "Reúne herramientas, recursos o información que necesitarás.",
            "effort": "pequeno",
        },
        {
            "title": "Ejecuta la primera acción hoy",
            "description": "Haz algo pequeño ahora mismo para romper la inercia.",
            "effort": "pequeno",
        },
    ],
}

FALLBACK_PLANS: Dict[str, List[Dict[str, Any]]] = {
    "clientes": [
        {
            "channel": "WhatsApp",
            "actions": [
                {
                    "action_type": "mensaje_directo",
                    "title": "Escribir a 5 contactos que encajan con el perfil",
                    "content": "Hola [nombre], estoy lanzando {title}. Creo que te puede servir. ¿Te cuento en 5 minutos?",
                },
                {
                    "action_type": "mensaje_directo",
                    "title": "Hacer seguimiento a quienes respondieron",
                    "content": "Hola [nombre], gracias por responder. ¿Agendamos una llamada corta esta semana?",
                },
            ],
        },
        {
            "channel": "LinkedIn",
            "actions": [
                {
                    "action_type": "publicacion",
                    "title": "Publicar el problema que resuelves",
                    "content": "Estoy trabajando en {title}. Si te pasa esto, escríbeme y te muestro cómo funciona.",
                },
                {
                    "action_type": "mensaje_directo",
                    "title": "Enviar 3 invitaciones con nota personal",
                    "content": "Hola [nombre], vi tu perfil y creo que {title} te puede interesar. ¿Conversamos?",
                },
            ],
        },
    ],
    "validacion": [
        {
            "channel": "WhatsApp",
            "actions": [
                {
                    "action_type": "mensaje_directo",
                    "title": "Pedir feedback a 5 personas del perfil objetivo",
                    "content": "Hola [nombre], estoy explorando {title} y me encantaría tu opinión honesta. ¿Te puedo hacer 3 preguntas?",
                },
                {
                    "action_type": "mensaje_directo",
                    "title": "Preguntar cómo resuelven hoy el problema",
                    "content": "¿Cómo resuelves esto hoy? ¿Qué es lo más molesto del proceso?",
                },
            ],
        },
        {
            "channel": "Llamada",
            "actions": [
                {
                    "action_type": "entrevista",
                    "title": "Agendar 2 entrevistas de 15 minutos",
                    "content": "¿Tienes 15 minutos esta semana para contarme tu experiencia con este tema?",
                },
                {
                    "action_type": "entrevista",
                    "title": "Anotar los 3 aprendizajes principales",
                    "content": "Después de cada conversación, escribe qué te sorprendió y qué confirmaste.",
                },
            ],
        },
    ],
    "equipo": [
        {
            "channel": "Slack",
            "actions": [
                {
                    "action_type": "mensaje_canal",
                    "title": "Anunciar la iniciativa en el canal del equipo",
                    "content": "¡Hola equipo! Estamos arrancando {title}. Nos encantaría que participen, ¿quién se suma?",
                },
                {
                    "action_type": "mensaje_directo",
                    "title": "Invitar personalmente a 3 compañeros clave",
                    "content": "Hola [nombre], tu experiencia sería clave para {title}. ¿Te animas a sumarte?",
                },
            ],
        },
        {
            "channel": "Reunión",
            "actions": [
                {
                    "action_type": "reunion",
                    "title": "Presentar la idea en 5 minutos en la próxima reunión",
                    "content": "Comparte el objetivo, por qué importa y cuál es el primer paso de todos.",
                },
                {
                    "action_type": "reunion",
                    "title": "Acordar responsables y fecha de revisión",
                    "content": "Cierra con nombres concretos y una fecha para revisar avances juntos.",
                },
            ],
        },
    ],
    "ritual": [
        {
            "channel": "Diario",
            "actions": [
                {
                    "action_type": "tarea_recurrente",
                    "title": "Bloque de 10 minutos para {title}",
                    "content": "Frecuencia: cada día a la misma hora.\n\nAcción: avanza 10 minutos sin distracciones.",
                },
                {
                    "action_type": "tarea_recurrente",
                    "title": "Registrar el avance del día",
                    "content": "Frecuencia: cada noche.\n\nAcción: anota qué hiciste y un aprendizaje.",
                },
            ],
        },
        {
            "channel": "Semanal",
            "actions": [
                {
                    "action_type": "tarea_recurrente",
                    "title": "Revisión semanal",
                    "content": "Frecuencia: cada domingo.\n\nAcción: revisa la semana y elige el foco de la próxima.",
                },
            ],
        },
    ],
}


def ensure_description(title: Optional[str], description: Optional[str]) -> str:
    if description and description.strip():
        return description.strip()
    if title and title.strip():
        return f"Acción: {title.strip()}"
    return DESCRIPTION_FALLBACK


def detect_category(text: str, category: Optional[str] = None) -> str:
    normalized = (category or "").strip().lower()
    if normalized in FALLBACK_STEPS:
        return normalized
    lowered = (text or "").lower()
    words = set(lowered.replace(",", " ").replace(".", " ").split())
    for key, keywords in CATEGORY_KEYWORDS.items():
        if words & keywords:
            return key
    return "generic"


def fallback_steps(category: str) -> List[StepDraft]:
    templates = FALLBACK_STEPS.get(category) or FALLBACK_STEPS["generic"]
    return [StepDraft(**template) for template in templates]


def fallback_attack_plan(brief: ExperimentBrief) -> AttackPlan:
    key = "ritual" if brief.surface_type == "ritual" else brief.experiment_type
    templates = FALLBACK_PLANS.get(key) or FALLBACK_PLANS["clientes"]
    title = brief.title or "tu proyecto"
    channels = [
        ChannelPlan(
            channel=channel["channel"],
            actions=[
                ActionDraft(
                    action_type=action["action_type"],
                    title=action["title"].format(title=title),
                    content=action["content"].format(title=title),
                )
                for action in channel["actions"]
            ],
        )
        for channel in templates
    ]
    return AttackPlan(channels=channels).capped()


def generate_steps(
    goal_title: str,
    goal_description: str,
    stage_id: str,
    situational_context: Optional[str] = None,
    category: Optional[str] = None,
    first_steps: Optional[Sequence[str]] = None,
    request_id: Optional[str] = None,
) -> GeneratedSteps:
    """Ask the generator for up to three steps; never returns an empty list."""
    resolved_category = detect_category(f"{goal_title} {goal_description}", category)
    metadata = {"stage": stage_id, "category": resolved_category}

    user_prompt = (
        f"Objetivo: {goal_title}\n"
        f"Descripción: {goal_description or 'Sin descripción'}\n"
        f"Etapa actual: {stage_id}. Enfoque: {prompts.STAGE_FOCUS.get(stage_id, '')}"
    )
    if situational_context:
        user_prompt += f"\nContexto del usuario: {situational_context}"
    if first_steps:
        user_prompt += "\nIdeas iniciales del usuario:\n" + "\n".join(f"- {step}" for step in first_steps)

    try:
        parsed = llm_client.generate_model(
            StepList,
            prompts.STEPS_PROMPT,
            user_prompt,
            trace_name="steps.generate",
            metadata=metadata,
            request_id=request_id,
        )
        steps = [
            StepDraft(title=step.title, description=ensure_description(step.title, step.description), effort=step.effort)
            for step in parsed.steps[:MAX_STEPS]
        ]
        log_metric("steps.generate.success", 1, metadata=metadata)
        return GeneratedSteps(steps=steps, fallback_used=False)
    except GenerationFailure as exc:
        logger.info("Step generation failed (%s); using %s fallback", exc, resolved_category)
    except Exception:
        logger.warning("Unexpected step generator error; using %s fallback", resolved_category, exc_info=True)

    log_metric("steps.fallback.used", 1, metadata=metadata)
    return GeneratedSteps(steps=fallback_steps(resolved_category), fallback_used=True)


def generate_attack_plan(brief: ExperimentBrief, request_id: Optional[str] = None) -> GeneratedPlan:
    """Multi-channel plan capped at three channels with two actions each."""
    metadata = {"experiment_type": brief.experiment_type, "surface_type": brief.surface_type}
    if brief.surface_type == "ritual":
        system_prompt = f"{prompts.RITUAL_PROMPT}\n\n{prompts.JSON_ONLY}\n{prompts.ATTACK_PLAN_SCHEMA}"
    else:
        base = prompts.ATTACK_PLAN_PROMPTS.get(brief.experiment_type, prompts.ATTACK_PLAN_PROMPTS["clientes"])
        modifier = prompts.SURFACE_PROMPT_MODIFIERS.get(brief.surface_type, "")
        system_prompt = f"{base}\n\n{modifier}\n\n{prompts.JSON_ONLY}\n{prompts.ATTACK_PLAN_SCHEMA}"

    try:
        parsed = llm_client.generate_model(
            AttackPlan,
            system_prompt,
            _brief_prompt(brief),
            trace_name="attack_plan.generate",
            metadata=metadata,
            request_id=request_id,
        )
        log_metric("attack_plan.generate.success", 1, metadata=metadata)
        return GeneratedPlan(plan=parsed.capped(), fallback_used=False)
    except GenerationFailure as exc:
        logger.info("Attack plan generation failed (%s); using fallback plan", exc)
    except Exception:
        logger.warning("Unexpected attack plan generator error; using fallback plan", exc_info=True)

    log_metric("attack_plan.fallback.used", 1, metadata=metadata)
    return GeneratedPlan(plan=fallback_attack_plan(brief), fallback_used=True)


def generate_more_actions(
    brief: ExperimentBrief,
    channel: str,
    existing_titles: Sequence[str],
    request_id: Optional[str] = None,
) -> List[ActionDraft]:
    tone = prompts.MORE_ACTIONS_TONE.get(brief.experiment_type, prompts.MORE_ACTIONS_TONE["clientes"])
    user_prompt = (
        f"{_brief_prompt(brief)}\nCanal: {channel}\n\n"
        "Acciones existentes que NO debes repetir:\n"
        + "\n".join(f"{index}. {title}" for index, title in enumerate(existing_titles, start=1))
    )
    try:
        parsed = llm_client.generate_model(
            ActionBatch,
            prompts.MORE_ACTIONS_PROMPT.format(tone=tone),
            user_prompt,
            trace_name="attack_plan.more_actions",
            metadata={"channel": channel},
            request_id=request_id,
            temperature=0.8,
        )
        return parsed.actions[:MORE_ACTIONS_COUNT]
    except GenerationFailure as exc:
        logger.info("More-actions generation failed (%s); using fallback", exc)
    except Exception:
        logger.warning("Unexpected more-actions generator error; using fallback", exc_info=True)

    log_metric("attack_plan.more_actions.fallback.used", 1, metadata={"channel": channel})
    title = brief.title or "tu proyecto"
    return [
        ActionDraft(
            action_type="mensaje_directo",
            title=f"Contactar a 3 personas nuevas por {channel}",
            content=f"Hola [nombre], estoy trabajando en {title} y me gustaría saber tu opinión. ¿Conversamos?",
        ),
        ActionDraft(
            action_type="seguimiento",
            title=f"Dar seguimiento a quienes no respondieron en {channel}",
            content=f"Hola [nombre], te escribo de nuevo sobre {title}. ¿Tienes 5 minutos esta semana?",
        ),
    ]


def _brief_prompt(brief: ExperimentBrief) -> str:
    lines = [f"Proyecto: {brief.title}", f"Descripción: {brief.description}"]
    if brief.target_audience:
        lines.append(f"Audiencia objetivo: {brief.target_audience}")
    if brief.promise:
        lines.append(f"Promesa: {brief.promise}")
    if brief.desired_action:
        lines.append(f"Acción deseada: {brief.desired_action}")
    return "\n".join(lines)
