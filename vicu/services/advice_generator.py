"""LLM coaching calls: stage advice, next step, step chat and WhatsApp micro actions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from vicu.observability.metrics import log_metric
from vicu.services import llm_client, prompts
from vicu.services.llm_client import GenerationFailure
from vicu.services.plan_generator import EFFORT_VALUES, Effort

logger = logging.getLogger(__name__)

AdviceAction = Literal["seguir_construyendo", "probar", "ajustar", "logrado", "pausar", "descartar"]

MICRO_ACTION_FALLBACK = "Dedicar 5 minutos a este objetivo"
ALTERNATIVE_ACTION_FALLBACK = "Pensar en el siguiente paso por 1 minuto"
STEP_CHAT_FALLBACK = (
    "Empieza por lo más pequeño: dedica 5 minutos a \"{step_title}\" y anota qué te frena. "
    "Con eso ya avanzaste."
)
STEP_CHAT_MAX_TOKENS = 300

NEXT_STEP_FALLBACKS = {
    "not_started": {
        "next_step_title": "Abre tu proyecto y escribe una sola línea",
        "next_step_description": "Dedica 5 minutos a anotar qué quieres lograr hoy con este objetivo.",
        "effort": "muy_pequeno",
    },
    "stuck": {
        "next_step_title": "Divide el bloqueo en una pieza más pequeña",
        "next_step_description": "Escribe qué te frenó y elige la parte más simple para resolver en 15 minutos.",
        "effort": "pequeno",
    },
    "going_well": {
        "next_step_title": "Completa la siguiente acción pendiente del plan",
        "next_step_description": "Aprovecha el impulso y cierra una acción que deje un avance visible.",
        "effort": "medio",
    },
}


class AdviceDraft(BaseModel):
    action: AdviceAction
    title: str = Field(..., min_length=1)
    summary: str = ""
    reasons: List[str] = Field(default_factory=list)
    suggested_next_focus: Optional[str] = None

    @field_validator("reasons")
    @classmethod
    def _cap_reasons(cls, value: List[str]) -> List[str]:
        return [reason.strip() for reason in value if reason and reason.strip()][:3]


class NextStepDraft(BaseModel):
    next_step_title: str = Field(..., min_length=1, max_length=120)
    next_step_description: str = ""
    effort: Effort = "pequeno"

    @field_validator("effort", mode="before")
    @classmethod
    def _coerce_effort(cls, value):
        return value if value in EFFORT_VALUES else "pequeno"


class MicroAction(BaseModel):
    action: str = Field(..., min_length=1)


@dataclass
class AdviceContext:
    goal_title: str
    goal_description: str
    stage: str
    completed_steps: int
    total_steps: int
    days_since_start: int
    surface_type: str = "landing"
    self_result: Optional[str] = None
    visits: int = 0
    leads: int = 0
    done_actions: int = 0
    total_actions: int = 0


@dataclass
class GeneratedNextStep:
    next_step_title: str
    next_step_description: str
    effort: str
    fallback_used: bool

    def to_dict(self) -> dict:
        return {
            "next_step_title": self.next_step_title,
            "next_step_description": self.next_step_description,
            "effort": self.effort,
        }


def generate_stage_advice(context: AdviceContext, request_id: Optional[str] = None) -> AdviceDraft:
    """Ask the LLM for a stage decision. Raises GenerationFailure; callers own the fallback."""
    user_prompt = "\n".join(
        [
            f"Objetivo: {context.goal_title}",
            f"Descripción: {context.goal_description}",
            f"Etapa actual: {context.stage}",
            f"Pasos completados en la etapa: {context.completed_steps}/{context.total_steps}",
            f"Acciones del plan completadas: {context.done_actions}/{context.total_actions}",
            f"Días desde el inicio: {context.days_since_start}",
            f"Superficie: {context.surface_type}",
            f"Visitas: {context.visits}, leads: {context.leads}",
            f"Autoevaluación: {context.self_result or 'sin evaluar'}",
        ]
    )
    return llm_client.generate_model(
        AdviceDraft,
        prompts.STAGE_ADVICE_PROMPT,
        user_prompt,
        trace_name="recommendation.generate",
        metadata={"stage": context.stage},
        request_id=request_id,
    )


def generate_next_step(
    project_context: str,
    current_state: str,
    previous_step_title: Optional[str] = None,
    completed_titles: Sequence[str] = (),
    request_id: Optional[str] = None,
) -> GeneratedNextStep:
    system_prompt = prompts.NEXT_STEP_PROMPT.format(
        state_instructions=prompts.NEXT_STEP_STATE_INSTRUCTIONS[current_state]
    )
    user_prompt = f"{project_context}\n\nEstado del usuario: {prompts.NEXT_STEP_STATE_LABELS[current_state]}"
    if completed_titles:
        user_prompt += "\n\nYa completado:\n" + "\n".join(f"- {title}" for title in completed_titles)
    if previous_step_title:
        user_prompt += f'\n\nPaso anterior a evitar (propón algo distinto):\n"{previous_step_title}"'

    metadata = {"current_state": current_state}
    try:
        draft = llm_client.generate_model(
            NextStepDraft,
            system_prompt,
            user_prompt,
            trace_name="next_step.generate",
            metadata=metadata,
            request_id=request_id,
        )
        return GeneratedNextStep(
            next_step_title=draft.next_step_title.strip(),
            next_step_description=draft.next_step_description.strip(),
            effort=draft.effort,
            fallback_used=False,
        )
    except GenerationFailure as exc:
        logger.info("Next step generation failed (%s); using %s fallback", exc, current_state)
    except Exception:
        logger.warning("Unexpected next step generator error", exc_info=True)

    log_metric("next_step.fallback.used", 1, metadata=metadata)
    return GeneratedNextStep(**NEXT_STEP_FALLBACKS[current_state], fallback_used=True)


def generate_micro_action(goal_title: str, request_id: Optional[str] = None) -> str:
    try:
        result = llm_client.generate_model(
            MicroAction,
            prompts.MICRO_ACTION_PROMPT,
            f"Objetivo: {goal_title}",
            trace_name="whatsapp.micro_action",
            request_id=request_id,
        )
        return result.action.strip() or MICRO_ACTION_FALLBACK
    except GenerationFailure as exc:
        logger.info("Micro action generation failed: %s", exc)
    except Exception:
        logger.warning("Unexpected micro action generator error", exc_info=True)
    log_metric("whatsapp.micro_action.fallback.used", 1)
    return MICRO_ACTION_FALLBACK


def generate_alternative_action(goal_title: str, original_action: str, request_id: Optional[str] = None) -> str:
    try:
        result = llm_client.generate_model(
            MicroAction,
            prompts.ALTERNATIVE_ACTION_PROMPT,
            f"Objetivo: {goal_title}\nAcción original: {original_action}",
            trace_name="whatsapp.alternative_action",
            request_id=request_id,
        )
        return result.action.strip() or ALTERNATIVE_ACTION_FALLBACK
    except GenerationFailure as exc:
        logger.info("Alternative action generation failed: %s", exc)
    except Exception:
        logger.warning("Unexpected alternative action generator error", exc_info=True)
    log_metric("whatsapp.alternative_action.fallback.used", 1)
    return ALTERNATIVE_ACTION_FALLBACK


@dataclass
class StepChatContext:
    project_title: str
    step_title: str
    project_description: Optional[str] = None
    step_description: Optional[str] = None
    current_suggestion: Optional[str] = None
    user_notes: Sequence[str] = ()

    def render(self) -> str:
        lines = [
            f"- Objetivo: {self.project_title or 'Sin título'}",
            f"- Descripción: {self.project_description or 'Sin descripción'}",
            f"- Paso actual: {self.step_title}",
        ]
        if self.step_description:
            lines.append(f"- Detalles del paso: {self.step_description}")
        if self.current_suggestion:
            lines.append(f"- Sugerencia previa de Vicu: {self.current_suggestion}")
        if self.user_notes:
            lines.append(f"- Notas del usuario: {', '.join(self.user_notes)}")
        return "\n".join(lines)


@dataclass
class StepChatReply:
    content: str
    fallback_used: bool


def step_chat_reply(
    context: StepChatContext,
    history: Sequence[dict],
    user_message: str,
    request_id: Optional[str] = None,
) -> StepChatReply:
    """Answer the user's question about a single step, keeping the prior turns."""
    messages = [{"role": "system", "content": prompts.STEP_CHAT_PROMPT.format(context=context.render())}]
    messages.extend(
        {"role": turn["role"], "content": turn["content"]}
        for turn in history
        if turn.get("role") in ("user", "assistant") and turn.get("content")
    )
    messages.append({"role": "user", "content": user_message})
    try:
        content = llm_client.complete_chat(
            messages,
            trace_name="step_chat.reply",
            request_id=request_id,
            max_tokens=STEP_CHAT_MAX_TOKENS,
        )
        return StepChatReply(content=content, fallback_used=False)
    except GenerationFailure as exc:
        logger.info("Step chat failed: %s", exc)
    except Exception:
        logger.warning("Unexpected step chat error", exc_info=True)
    log_metric("step_chat.fallback.used", 1)
    return StepChatReply(content=STEP_CHAT_FALLBACK.format(step_title=context.step_title), fallback_used=True)
