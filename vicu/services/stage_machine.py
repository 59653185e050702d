"""Life-cycle stages of a goal and the moves allowed between them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Tuple, Union

STAGES: Tuple[str, ...] = ("queued", "building", "testing", "adjusting", "achieved", "paused", "discarded")
TERMINAL_STAGES: FrozenSet[str] = frozenset({"achieved", "discarded"})

VALID_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "queued": ("building", "paused", "discarded"),
    "building": ("testing", "paused", "discarded"),
    "testing": ("adjusting", "achieved", "paused", "discarded"),
    "adjusting": ("achieved", "testing", "paused", "discarded"),
    "achieved": (),
    "paused": ("building", "testing", "adjusting", "discarded"),
    "discarded": (),
}

DEFAULT_NEXT_STAGE: Dict[str, Optional[str]] = {
    "queued": "building",
    "building": "testing",
    "testing": "adjusting",
    "adjusting": "achieved",
    "achieved": None,
    "paused": "building",
    "discarded": None,
}

ACTION_TO_STAGE: Dict[str, str] = {
    "seguir_construyendo": "building",
    "probar": "testing",
    "ajustar": "adjusting",
    "logrado": "achieved",
    "pausar": "paused",
    "descartar": "discarded",
}

STAGE_LABELS: Dict[str, str] = {
    "queued": "Por empezar",
    "building": "Construyendo",
    "testing": "Probando",
    "adjusting": "Ajustando",
    "achieved": "Logrado",
    "paused": "Pausado",
    "discarded": "Descartado",
}

STAGE_EMOJIS: Dict[str, str] = {
    "queued": "📋",
    "building": "🔨",
    "testing": "🧪",
    "adjusting": "🔄",
    "achieved": "🎉",
    "paused": "⏸️",
    "discarded": "🗑️",
}


@dataclass(frozen=True)
class ForStage:
    stage: str


@dataclass(frozen=True)
class Legacy:
    """Step created before stage scoping; it counts toward whatever stage is current."""


StepScope = Union[ForStage, Legacy]


def scope_from_tag(tag: Optional[str]) -> StepScope:
    return ForStage(tag) if tag else Legacy()


def scope_to_tag(scope: StepScope) -> Optional[str]:
    return scope.stage if isinstance(scope, ForStage) else None


def scope_matches(scope: StepScope, stage: str) -> bool:
    if isinstance(scope, Legacy):
        return True
    return scope.stage == stage


@dataclass(frozen=True)
class StepState:
    scope: StepScope
    done: bool


@dataclass(frozen=True)
class StageProgress:
    completed: int
    total: int

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.completed == self.total

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)


@dataclass(frozen=True)
class StageTransition:
    next_stage: str
    label: str
    emoji: str
    is_resume: bool = False


def compute_stage_progress(steps: Iterable[StepState], stage: str) -> StageProgress:
    """Count done steps among those scoped to the given stage."""
    scoped = [step for step in steps if scope_matches(step.scope, stage)]
    return StageProgress(completed=sum(1 for step in scoped if step.done), total=len(scoped))


def is_terminal(stage: str) -> bool:
    return stage in TERMINAL_STAGES


def is_valid_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, ())


def resolve_transition(
    current: str,
    progress: StageProgress,
    action: Optional[str] = None,
) -> Optional[StageTransition]:
    """
    Offer the next stage once the current stage's steps are all done.

    A recommended action wins when it maps to a legal move away from the current
    stage; otherwise the default progression applies. Terminal stages offer nothing.
    """
    if is_terminal(current) or not progress.is_complete:
        return None

    suggested = ACTION_TO_STAGE.get(action or "")
    if suggested and suggested != current and is_valid_transition(current, suggested):
        return _transition(suggested, is_resume=False)

    default_next = DEFAULT_NEXT_STAGE.get(current)
    if not default_next:
        return None
    return _transition(default_next, is_resume=current == "paused")


def _transition(next_stage: str, *, is_resume: bool) -> StageTransition:
    verb = "Retomar" if is_resume else "Aceptar"
    return StageTransition(
        next_stage=next_stage,
        label=f"{verb}: Cambiar a {STAGE_LABELS[next_stage]}",
        emoji=STAGE_EMOJIS[next_stage],
        is_resume=is_resume,
    )
