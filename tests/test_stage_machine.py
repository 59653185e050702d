"""Tests for stage progress and transition offers."""
from __future__ import annotations

import pytest

from vicu.services import stage_machine
from vicu.services.stage_machine import ForStage, Legacy, StageProgress, StepState


@pytest.mark.parametrize(
    "current,target,expected",
    [
        ("queued", "building", True),
        ("queued", "testing", False),
        ("testing", "achieved", True),
        ("adjusting", "testing", True),
        ("paused", "adjusting", True),
        ("achieved", "building", False),
        ("discarded", "testing", False),
    ],
)
def test_valid_transitions(current: str, target: str, expected: bool) -> None:
    assert stage_machine.is_valid_transition(current, target) is expected


def test_progress_counts_stage_and_legacy_steps() -> None:
    steps = [
        StepState(ForStage("testing"), done=True),
        StepState(ForStage("testing"), done=False),
        StepState(ForStage("building"), done=True),
        StepState(Legacy(), done=True),
    ]

    progress = stage_machine.compute_stage_progress(steps, "testing")

    assert (progress.completed, progress.total) == (2, 3)
    assert progress.percent == 67
    assert progress.is_complete is False


def test_empty_stage_is_never_complete() -> None:
    progress = stage_machine.compute_stage_progress([], "testing")

    assert progress.is_complete is False
    assert progress.percent == 0


def test_scope_tags_round_trip() -> None:
    assert stage_machine.scope_from_tag(None) == Legacy()
    assert stage_machine.scope_from_tag("building") == ForStage("building")
    assert stage_machine.scope_to_tag(ForStage("building")) == "building"
    assert stage_machine.scope_to_tag(Legacy()) is None


def test_no_offer_until_stage_complete() -> None:
    assert stage_machine.resolve_transition("testing", StageProgress(completed=2, total=3)) is None


def test_default_progression_offer() -> None:
    offer = stage_machine.resolve_transition("testing", StageProgress(completed=3, total=3))

    assert offer.next_stage == "adjusting"
    assert offer.label == "Aceptar: Cambiar a Ajustando"
    assert offer.emoji == "🔄"
    assert offer.is_resume is False


def test_recommended_action_overrides_default_when_legal() -> None:
    done = StageProgress(completed=3, total=3)

    assert stage_machine.resolve_transition("testing", done, "logrado").next_stage == "achieved"
    assert stage_machine.resolve_transition("testing", done, "probar").next_stage == "adjusting"
    assert stage_machine.resolve_transition("testing", done, "seguir_construyendo").next_stage == "adjusting"


def test_paused_goal_offers_resume() -> None:
    offer = stage_machine.resolve_transition("paused", StageProgress(completed=1, total=1))

    assert offer.next_stage == "building"
    assert offer.is_resume is True
    assert offer.label == "Retomar: Cambiar a Construyendo"


def test_terminal_stages_offer_nothing() -> None:
    done = StageProgress(completed=1, total=1)

    assert stage_machine.resolve_transition("achieved", done) is None
    assert stage_machine.resolve_transition("discarded", done, "probar") is None


@pytest.mark.parametrize("current", stage_machine.STAGES)
@pytest.mark.parametrize("action", [None, "unknown", *stage_machine.ACTION_TO_STAGE])
def test_offered_transition_is_always_legal(current, action) -> None:
    offer = stage_machine.resolve_transition(current, StageProgress(completed=2, total=2), action)

    if stage_machine.is_terminal(current):
        assert offer is None
    else:
        assert offer is not None
        assert (
            offer.next_stage in stage_machine.VALID_TRANSITIONS[current]
            or offer.next_stage == stage_machine.DEFAULT_NEXT_STAGE[current]
        )
