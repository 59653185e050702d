"""Turn an intake conversation into a goal brief: classification, rhythm inputs and first steps."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator

from vicu.observability.metrics import log_metric
from vicu.services import llm_client, prompts
from vicu.services.llm_client import GenerationFailure

logger = logging.getLogger(__name__)

AnalysisContext = Literal["personal", "business", "team", "mixed"]
AnalysisExperimentType = Literal["clientes", "validacion", "equipo", "otro"]
ProjectCategory = Literal[
    "health", "business", "career", "learning", "habits", "personal_admin", "creative", "team", "other"
]
ProjectSubject = Literal["yo", "otra_persona", "equipo", "clientes"]

MIN_CONFIDENCE = 0.6
MAX_TITLE_LENGTH = 50
MAX_LIST_ITEMS = 5
MAX_QUESTIONS = 3
FALLBACK_QUESTION = "Cuéntame más sobre tu proyecto. ¿Qué quieres lograr exactamente?"
SPEAKER_LABELS = {"vicu": "Vicu", "user": "Usuario"}


@dataclass(frozen=True)
class ChatTurn:
    role: Literal["vicu", "user"]
    content: str


def _clean_list(value: Any, limit: int) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item and str(item).strip()][:limit]


class ChatAnalysis(BaseModel):
    summary: str = ""
    generated_title: str = ""
    context: AnalysisContext = "business"
    experiment_type: AnalysisExperimentType = "otro"
    surface_type: Literal["landing", "messages", "ritual"] = "ritual"
    target_audience: str = ""
    main_pain: str = ""
    promise: str = ""
    desired_action: str = ""
    success_metric: str = ""
    suggested_deadline: Optional[str] = None
    deadline_date: Optional[date] = None
    needs_clarification: bool = True
    clarifying_questions: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    context_bullets: List[str] = Field(default_factory=list)
    first_steps: List[str] = Field(default_factory=list)
    detected_category: ProjectCategory = "other"
    detected_subject: ProjectSubject = "yo"

    @field_validator(
        "summary", "generated_title", "target_audience", "main_pain", "promise",
        "desired_action", "success_metric", mode="before",
    )
    @classmethod
    def _text(cls, value):
        return "" if value is None else str(value).strip()

    @field_validator("generated_title")
    @classmethod
    def _short_title(cls, value: str) -> str:
        if len(value) > MAX_TITLE_LENGTH:
            return value[: MAX_TITLE_LENGTH - 3].rstrip() + "..."
        return value

    @field_validator("deadline_date", mode="before")
    @classmethod
    def _lenient_date(cls, value):
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                return None
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if number > 1:
            number /= 100
        return max(0.0, min(1.0, number))

    @field_validator("context_bullets", "first_steps", mode="before")
    @classmethod
    def _cap_items(cls, value):
        return _clean_list(value, MAX_LIST_ITEMS)

    @field_validator("clarifying_questions", mode="before")
    @classmethod
    def _cap_questions(cls, value):
        return _clean_list(value, MAX_QUESTIONS)

    @model_validator(mode="after")
    def _low_confidence_needs_questions(self) -> "ChatAnalysis":
        if self.confidence < MIN_CONFIDENCE:
            self.needs_clarification = True
            if not self.clarifying_questions:
                self.clarifying_questions = [FALLBACK_QUESTION]
        return self


@dataclass
class AnalysisResult:
    analysis: ChatAnalysis
    fallback_used: bool


def fallback_analysis() -> ChatAnalysis:
    """Safe default: ask for more context and never suggest a landing page."""
    return ChatAnalysis(
        context="business",
        experiment_type="otro",
        surface_type="ritual",
        needs_clarification=True,
        clarifying_questions=[FALLBACK_QUESTION],
        confidence=0.0,
    )


def conversation_text(turns: Sequence[ChatTurn]) -> str:
    return "\n".join(f"{SPEAKER_LABELS.get(turn.role, 'Usuario')}: {turn.content}" for turn in turns)


def analyze_chat(
    turns: Sequence[ChatTurn],
    today: Optional[date] = None,
    request_id: Optional[str] = None,
) -> AnalysisResult:
    today = today or date.today()
    system_prompt = prompts.CHAT_ANALYSIS_PROMPT.format(today=today.isoformat())
    user_prompt = f"Analiza esta conversación y extrae el plan de experimento:\n\n{conversation_text(turns)}"
    try:
        analysis = llm_client.generate_model(
            ChatAnalysis,
            system_prompt,
            user_prompt,
            trace_name="chat.analyze",
            metadata={"turns": len(turns)},
            request_id=request_id,
            temperature=0.3,
        )
        return AnalysisResult(analysis=analysis, fallback_used=False)
    except GenerationFailure as exc:
        logger.info("Chat analysis failed (%s); asking for clarification", exc)
    except Exception:
        logger.warning("Unexpected chat analyzer error", exc_info=True)

    log_metric("chat.analyze.fallback.used", 1)
    return AnalysisResult(analysis=fallback_analysis(), fallback_used=True)


def is_analysis_complete(analysis: ChatAnalysis) -> bool:
    """Enough context to create the goal: audience, a pain or promise, an action, and confidence."""
    required = (
        analysis.target_audience,
        analysis.main_pain or analysis.promise,
        analysis.desired_action,
    )
    has_fields = all(value and value.strip() for value in required)
    return has_fields and analysis.confidence >= MIN_CONFIDENCE and not analysis.needs_clarification


def map_experiment_type_to_db(experiment_type: str, context: str) -> str:
    if context == "team" or experiment_type == "equipo":
        return "equipo"
    if experiment_type == "validacion":
        return "validacion"
    return "clientes"


def goal_draft(analysis: ChatAnalysis) -> Dict[str, Any]:
    """Fields ready for goal creation; a mixed context is stored as business."""
    return {
        "title": analysis.generated_title or None,
        "description": analysis.summary or None,
        "experiment_type": map_experiment_type_to_db(analysis.experiment_type, analysis.context),
        "surface_type": analysis.surface_type,
        "context": "business" if analysis.context == "mixed" else analysis.context,
        "target_audience": analysis.target_audience or None,
        "promise": analysis.promise or None,
        "desired_action": analysis.desired_action or None,
        "deadline": analysis.deadline_date,
        "deadline_source": "ai_suggested" if analysis.deadline_date else None,
        "detected_category": analysis.detected_category,
        "first_steps": list(analysis.first_steps),
    }
