"""Tests for intake conversation analysis and the goal draft it produces."""
from __future__ import annotations

import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from vicu.core.config import settings
from vicu.main import app
from vicu.services import chat_analyzer, llm_client
from vicu.services.chat_analyzer import ChatAnalysis, ChatTurn

TURNS = [
    ChatTurn(role="vicu", content="¿Qué quieres lograr?"),
    ChatTurn(role="user", content="Quiero vender mis tortas a oficinas de Miraflores"),
]

COMPLETE_ANALYSIS = {
    "summary": "Vender tortas a oficinas cercanas",
    "generated_title": "Tortas para oficinas en Miraflores",
    "context": "business",
    "experiment_type": "clientes",
    "surface_type": "messages",
    "target_audience": "Oficinas de Miraflores",
    "main_pain": "No tienen postres para cumpleaños",
    "promise": "Tortas frescas a domicilio",
    "desired_action": "Hacer un pedido de prueba",
    "success_metric": "3 pedidos en 2 semanas",
    "deadline_date": "2025-03-24",
    "needs_clarification": False,
    "clarifying_questions": [],
    "confidence": 85,
    "first_steps": ["Listar 10 oficinas", "Preparar mensaje", "Enviar 5 mensajes"],
    "detected_category": "business",
}


@pytest.fixture(autouse=True)
def _no_openai_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)


def _llm_returns(monkeypatch, payload) -> list:
    calls = []

    def fake_complete_json(system_prompt, user_prompt, **kwargs):
        calls.append({"system": system_prompt, "user": user_prompt, **kwargs})
        return json.dumps(payload)

    monkeypatch.setattr(llm_client, "complete_json", fake_complete_json)
    return calls


def test_conversation_text_labels_speakers() -> None:
    assert chat_analyzer.conversation_text(TURNS) == (
        "Vicu: ¿Qué quieres lograr?\nUsuario: Quiero vender mis tortas a oficinas de Miraflores"
    )


def test_without_key_asks_for_clarification() -> None:
    result = chat_analyzer.analyze_chat(TURNS)

    assert result.fallback_used is True
    analysis = result.analysis
    assert analysis.needs_clarification is True
    assert analysis.clarifying_questions == [chat_analyzer.FALLBACK_QUESTION]
    assert analysis.surface_type == "ritual"
    assert chat_analyzer.is_analysis_complete(analysis) is False


def test_generated_analysis_is_normalized(monkeypatch) -> None:
    calls = _llm_returns(monkeypatch, COMPLETE_ANALYSIS)

    result = chat_analyzer.analyze_chat(TURNS, today=date(2025, 3, 10))

    assert result.fallback_used is False
    analysis = result.analysis
    assert analysis.confidence == pytest.approx(0.85)
    assert analysis.deadline_date == date(2025, 3, 24)
    assert chat_analyzer.is_analysis_complete(analysis) is True
    assert "2025-03-10" in calls[0]["system"]
    assert calls[0]["trace_name"] == "chat.analyze"
    assert "Usuario: Quiero vender" in calls[0]["user"]


def test_low_confidence_forces_questions() -> None:
    analysis = ChatAnalysis(**{**COMPLETE_ANALYSIS, "confidence": 0.4})

    assert analysis.needs_clarification is True
    assert analysis.clarifying_questions == [chat_analyzer.FALLBACK_QUESTION]
    assert chat_analyzer.is_analysis_complete(analysis) is False


def test_lenient_fields() -> None:
    analysis = ChatAnalysis(
        generated_title="Un título larguísimo que no cabe en la tarjeta del objetivo",
        deadline_date="pronto",
        confidence="no sé",
        first_steps=["a", "", "b", "c", "d", "e", "f"],
        clarifying_questions=["1", "2", "3", "4"],
    )

    assert len(analysis.generated_title) <= 50
    assert analysis.generated_title.endswith("...")
    assert analysis.deadline_date is None
    assert analysis.confidence == 0.0
    assert analysis.first_steps == ["a", "b", "c", "d", "e"]
    assert analysis.clarifying_questions == ["1", "2", "3"]


@pytest.mark.parametrize(
    "experiment_type,context,expected",
    [
        ("clientes", "business", "clientes"),
        ("validacion", "business", "validacion"),
        ("otro", "personal", "clientes"),
        ("clientes", "team", "equipo"),
        ("equipo", "personal", "equipo"),
    ],
)
def test_map_experiment_type_to_db(experiment_type, context, expected) -> None:
    assert chat_analyzer.map_experiment_type_to_db(experiment_type, context) == expected


def test_goal_draft_stores_mixed_context_as_business() -> None:
    analysis = ChatAnalysis(**{**COMPLETE_ANALYSIS, "context": "mixed", "experiment_type": "otro"})

    draft = chat_analyzer.goal_draft(analysis)

    assert draft["context"] == "business"
    assert draft["experiment_type"] == "clientes"
    assert draft["deadline_source"] == "ai_suggested"
    assert draft["first_steps"] == COMPLETE_ANALYSIS["first_steps"]


def test_analyze_chat_route(monkeypatch) -> None:
    _llm_returns(monkeypatch, COMPLETE_ANALYSIS)
    messages = [{"role": turn.role, "content": turn.content} for turn in TURNS]

    with TestClient(app) as test_client:
        response = test_client.post("/analyze-chat", json={"messages": messages})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_complete"] is True
    assert body["fallback_used"] is False
    assert body["analysis"]["confidence"] == pytest.approx(0.85)
    assert body["goal_draft"]["surface_type"] == "messages"
    assert body["goal_draft"]["deadline"] == "2025-03-24"


def test_analyze_chat_route_requires_messages() -> None:
    with TestClient(app) as test_client:
        response = test_client.post("/analyze-chat", json={"messages": []})

    assert response.status_code == 400
    assert response.json()["detail"] == "Se requieren mensajes"
