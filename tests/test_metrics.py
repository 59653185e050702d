"""Tests for metrics and tracing helpers."""
from __future__ import annotations

from time import perf_counter
from typing import Any, Dict

import pytest

from vicu.observability import metrics
from vicu.observability import tracing


class _DummyTrace:
    def __init__(self, name: str, metadata: Dict[str, Any]):
        self.name = name
        self.metadata = metadata
        self.updates: list[Dict[str, Any]] = []
        self.ended = False

    def update(self, **kwargs) -> None:
        self.updates.append(kwargs)

    def end(self) -> None:
        self.ended = True


class _DummyClient:
    def __init__(self):
        self.traces: list[_DummyTrace] = []

    def trace(self, name: str, metadata: Dict[str, Any] | None = None):
        trace = _DummyTrace(name, metadata or {})
        self.traces.append(trace)
        return trace


@pytest.fixture()
def dummy_client(monkeypatch) -> _DummyClient:
    client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: client)
    return client


def test_log_metric_closes_trace(dummy_client) -> None:
    metrics.log_metric("checkin.xp_gained", 35, metadata={"stage": "testing"})

    assert dummy_client.traces, "Metric call should record a trace"
    recorded = dummy_client.traces[0]
    assert recorded.name == "metric:checkin.xp_gained"
    assert recorded.metadata == {"value": 35, "stage": "testing"}
    assert recorded.ended is True


def test_log_metric_is_noop_without_client(monkeypatch) -> None:
    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)

    metrics.log_metric("steps.fallback.used", 1)


def test_log_duration_reports_milliseconds(dummy_client) -> None:
    duration = metrics.log_duration_ms("stats.fetch", perf_counter() - 0.01)

    assert duration >= 10
    assert dummy_client.traces[0].metadata["value"] == duration


def test_trace_drops_empty_metadata_and_tags_ids(monkeypatch) -> None:
    client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: client)

    with tracing.trace(
        "experiment.create",
        metadata={"surface_type": "landing", "experiment_type": None},
        user_id="user-1",
        request_id="req-1",
    ) as opened:
        tracing.record_output(opened, {"steps": 3})

    recorded = client.traces[0]
    assert recorded.metadata == {"surface_type": "landing", "user_id": "user-1", "request_id": "req-1"}
    assert recorded.updates == [{"output": {"steps": 3}}]
    assert recorded.ended is True


def test_trace_attaches_error_and_reraises(monkeypatch) -> None:
    client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: client)

    with pytest.raises(RuntimeError):
        with tracing.trace("whatsapp.webhook"):
            raise RuntimeError("kapso down")

    assert client.traces[0].updates == [{"error_info": {"message": "kapso down"}}]
    assert client.traces[0].ended is True


def test_record_output_ignores_missing_trace() -> None:
    tracing.record_output(None, {"tag": "no_data"})
