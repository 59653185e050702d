"""Tests for step, attack-plan and coaching generation with their fallbacks."""
from __future__ import annotations

import json

import pytest

from vicu.core.config import settings
from vicu.services import advice_generator, llm_client, plan_generator
from vicu.services.advice_generator import AdviceContext
from vicu.services.llm_client import GenerationFailure
from vicu.services.plan_generator import ExperimentBrief


@pytest.fixture(autouse=True)
def _no_openai_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)


def _llm_returns(monkeypatch, payload) -> None:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    monkeypatch.setattr(llm_client, "complete_json", lambda *args, **kwargs: text)


def test_detect_category() -> None:
    assert plan_generator.detect_category("Quiero correr un 10k") == "health"
    assert plan_generator.detect_category("Conseguir clientes para mi tienda") == "business"
    assert plan_generator.detect_category("Algo sin pistas", "learning") == "learning"
    assert plan_generator.detect_category("Algo sin pistas", "desconocida") == "generic"


def test_ensure_description() -> None:
    assert plan_generator.ensure_description("Llamar", "  Hablar con Ana ") == "Hablar con Ana"
    assert plan_generator.ensure_description("Llamar", "") == "Acción: Llamar"
    assert plan_generator.ensure_description(None, None) == plan_generator.DESCRIPTION_FALLBACK


def test_generate_steps_without_key_uses_generic_fallback() -> None:
    generated = plan_generator.generate_steps("Mi meta", "Algo importante", "testing")

    assert generated.fallback_used is True
    assert [step.title for step in generated.steps] == [
        "Define el primer paso concreto para tu objetivo",
        "Prepara lo que necesitas para empezar",
        "Ejecuta la primera acción hoy",
    ]


def test_generate_steps_fallback_follows_category() -> None:
    generated = plan_generator.generate_steps("Aprender inglés", "Estudiar cada día", "building")

    assert generated.fallback_used is True
    assert generated.steps[0].title == "Elige un recurso principal"


def test_generate_steps_caps_and_cleans_llm_output(monkeypatch) -> None:
    _llm_returns(
        monkeypatch,
        "```json\n"
        + json.dumps(
            {
                "steps": [
                    {"title": "  Paso uno ", "description": "", "effort": "enorme"},
                    {"title": "Paso dos", "description": "Detalle", "effort": "medio"},
                    {"title": "Paso tres", "description": "Detalle", "effort": "muy_pequeno"},
                    {"title": "Paso cuatro", "description": "Detalle", "effort": "pequeno"},
                ]
            }
        )
        + "\n```",
    )

    generated = plan_generator.generate_steps("Meta", "Descripción", "testing")

    assert generated.fallback_used is False
    assert len(generated.steps) == plan_generator.MAX_STEPS
    assert generated.steps[0].title == "Paso uno"
    assert generated.steps[0].description == "Acción: Paso uno"
    assert generated.steps[0].effort == "pequeno"
    assert generated.steps[1].effort == "medio"


@pytest.mark.parametrize("payload", ['{"steps": []}', "sin json", '{"steps": [{"title": "   "}]}'])
def test_generate_steps_invalid_output_falls_back(monkeypatch, payload: str) -> None:
    _llm_returns(monkeypatch, payload)

    generated = plan_generator.generate_steps("Meta", "Descripción", "testing")

    assert generated.fallback_used is True
    assert len(generated.steps) == 3


def test_generate_attack_plan_is_capped(monkeypatch) -> None:
    channels = [
        {"channel": f"Canal {index}", "actions": [{"title": f"Acción {index}.{n}"} for n in range(3)]}
        for index in range(4)
    ]
    _llm_returns(monkeypatch, {"channels": channels})

    generated = plan_generator.generate_attack_plan(ExperimentBrief(title="Tienda", description="Vender"))

    assert generated.fallback_used is False
    assert len(generated.plan.channels) == plan_generator.MAX_CHANNELS
    assert all(len(channel.actions) == plan_generator.MAX_ACTIONS_PER_CHANNEL for channel in generated.plan.channels)


def test_fallback_attack_plan_by_type_and_surface() -> None:
    equipo = plan_generator.generate_attack_plan(
        ExperimentBrief(title="Hackathon", description="Interno", experiment_type="equipo")
    )
    ritual = plan_generator.fallback_attack_plan(
        ExperimentBrief(title="Meditar", description="Cada día", surface_type="ritual")
    )

    assert equipo.fallback_used is True
    assert equipo.plan.channels[0].channel == "Slack"
    assert "Hackathon" in equipo.plan.channels[0].actions[0].content
    assert ritual.channels[0].actions[0].title == "Bloque de 10 minutos para Meditar"


def test_generate_more_actions_fallback_names_channel() -> None:
    drafts = plan_generator.generate_more_actions(
        ExperimentBrief(title="Tienda", description="Vender"), "Instagram", ["Publicar historia"]
    )

    assert len(drafts) == 2
    assert all("Instagram" in draft.title for draft in drafts)


def test_stage_advice_raises_without_generator() -> None:
    context = AdviceContext(
        goal_title="Meta",
        goal_description="Desc",
        stage="testing",
        completed_steps=1,
        total_steps=3,
        days_since_start=2,
    )

    with pytest.raises(GenerationFailure):
        advice_generator.generate_stage_advice(context)


def test_stage_advice_caps_reasons(monkeypatch) -> None:
    _llm_returns(
        monkeypatch,
        {"action": "probar", "title": "Prueba ya", "reasons": ["a", " ", "b", "c", "d"]},
    )
    context = AdviceContext("Meta", "Desc", "building", 3, 3, 5)

    draft = advice_generator.generate_stage_advice(context)

    assert draft.action == "probar"
    assert draft.reasons == ["a", "b", "c"]


@pytest.mark.parametrize("state", ["not_started", "stuck", "going_well"])
def test_next_step_fallback_per_state(state: str) -> None:
    generated = advice_generator.generate_next_step("Proyecto: Meta", state)

    assert generated.fallback_used is True
    assert generated.to_dict() == advice_generator.NEXT_STEP_FALLBACKS[state]


def test_micro_actions_fall_back() -> None:
    assert advice_generator.generate_micro_action("Meta") == advice_generator.MICRO_ACTION_FALLBACK
    assert (
        advice_generator.generate_alternative_action("Meta", "Correr 5k")
        == advice_generator.ALTERNATIVE_ACTION_FALLBACK
    )
