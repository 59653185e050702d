"""Thin wrapper around the OpenAI chat API returning validated JSON payloads."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Type, TypeVar

import openai
from pydantic import BaseModel, ValidationError

from vicu.core.config import settings
from vicu.observability.tracing import record_output, trace

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class GenerationFailure(Exception):
    """The generator was unavailable or its output did not match the expected schema."""


def complete_json(
    system_prompt: str,
    user_prompt: str,
    *,
    trace_name: str,
    metadata: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    temperature: Optional[float] = None,
) -> str:
    """Run one chat completion in JSON mode and return the raw text."""
    api_key = settings.openai_api_key
    if not api_key:
        raise GenerationFailure("OPENAI_API_KEY missing")

    client = openai.OpenAI(api_key=api_key)
    trace_metadata = dict(metadata or {})
    trace_metadata.setdefault("model", settings.openai_model)
    with trace(trace_name, metadata=trace_metadata, request_id=request_id) as llm_trace:
        try:
            completion = client.chat.completions.create(
                model=settings.openai_model,
                response_format={"type": "json_object"},
                temperature=settings.openai_temperature if temperature is None else temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.OpenAIError as exc:
            raise GenerationFailure(f"LLM request failed: {exc}") from exc
        content = completion.choices[0].message.content if completion.choices else None
        record_output(llm_trace, {"llm_output_text": (content or "")[:2000]})

    if not content or not content.strip():
        raise GenerationFailure("LLM returned an empty response")
    return content


def extract_json(text: str) -> Dict[str, Any]:
    """Pull a JSON object out of text that may be wrapped in code fences or prose."""
    candidate = text.strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    if not candidate.startswith("{"):
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise GenerationFailure("No JSON object found in LLM output")
        candidate = candidate[start : end + 1]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise GenerationFailure(f"Malformed JSON from LLM: {exc}") from exc
    if not isinstance(parsed, dict):
        raise GenerationFailure("LLM output is not a JSON object")
    return parsed


def parse_model(text: str, model: Type[ModelT]) -> ModelT:
    try:
        return model.model_validate(extract_json(text))
    except ValidationError as exc:
        raise GenerationFailure(f"LLM output failed validation for {model.__name__}: {exc.error_count()} errors") from exc


def generate_model(
    model: Type[ModelT],
    system_prompt: str,
    user_prompt: str,
    *,
    trace_name: str,
    metadata: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    temperature: Optional[float] = None,
) -> ModelT:
    content = complete_json(
        system_prompt,
        user_prompt,
        trace_name=trace_name,
        metadata=metadata,
        request_id=request_id,
        temperature=temperature,
    )
    return parse_model(content, model)


def complete_chat(
    messages: List[Dict[str, str]],
    *,
    trace_name: str,
    metadata: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> str:
    """Run one free-text chat completion over a prepared message list."""
    api_key = settings.openai_api_key
    if not api_key:
        raise GenerationFailure("OPENAI_API_KEY missing")

    client = openai.OpenAI(api_key=api_key)
    trace_metadata = dict(metadata or {})
    trace_metadata.setdefault("model", settings.openai_model)
    trace_metadata.setdefault("turns", len(messages))
    options: Dict[str, Any] = {}
    if max_tokens is not None:
        options["max_tokens"] = max_tokens
    with trace(trace_name, metadata=trace_metadata, request_id=request_id) as llm_trace:
        try:
            completion = client.chat.completions.create(
                model=settings.openai_model,
                temperature=settings.openai_temperature if temperature is None else temperature,
                messages=messages,
                **options,
            )
        except openai.OpenAIError as exc:
            raise GenerationFailure(f"LLM request failed: {exc}") from exc
        content = completion.choices[0].message.content if completion.choices else None
        record_output(llm_trace, {"llm_output_text": (content or "")[:2000]})

    if not content or not content.strip():
        raise GenerationFailure("LLM returned an empty response")
    return content.strip()
