# =============================================================================
# Endpoint Tests — /plan-run, /answer, /health
# =============================================================================
#
# The LLM factory and executor dependencies are overridden, so these run
# the real routing, orchestration and SSE framing without network access.
# =============================================================================

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from alpha_oracle.agents.executor import Executor
from alpha_oracle.api.deps import get_executor, get_llm_factory
from alpha_oracle.api.sse import SSEParser
from alpha_oracle.config import settings
from alpha_oracle.main import app
from alpha_oracle.models.research import NEWS_PROVIDERS
from alpha_oracle.services.brave_search import (
    BraveNewsResult,
    BraveSearchClient,
    BraveWebResult,
)
from alpha_oracle.services.fmp import FMPClient
from alpha_oracle.services.llm import LLMResponse
from alpha_oracle.services.polygon import PolygonClient


class FakeLLM:
    """Returns queued completions and streams preset chunks."""

    def __init__(self, completions: list[str], chunks: list[str] | None = None):
        self.completions = list(completions)
        self.chunks = chunks or []
        self.systems: list[str | None] = []

    async def complete(self, messages, system=None, temperature=None,
                       max_tokens=None, json_mode=False):
        self.systems.append(system)
        content = self.completions.pop(0) if self.completions else ""
        return LLMResponse(content=content, model="fake", input_tokens=1, output_tokens=1)

    async def stream(self, messages, system=None, temperature=None, max_tokens=None):
        for chunk in self.chunks:
            yield chunk


def _executor() -> Executor:
    fmp = MagicMock(spec=FMPClient)
    fmp.is_available.return_value = False
    fmp.get_quote.return_value = None

    polygon = MagicMock(spec=PolygonClient)
    polygon.is_available.return_value = False

    brave = MagicMock(spec=BraveSearchClient)
    brave.is_available.return_value = True
    brave.search_news = AsyncMock(return_value=[
        BraveNewsResult(title="NVDA beats estimates", url="https://n.test/1"),
        BraveNewsResult(title="NVDA guidance raised", url="https://n.test/2"),
    ])
    brave.search_web = AsyncMock(return_value=[
        BraveWebResult(title="NVIDIA investor relations", url="https://w.test/1"),
    ])
    brave.search_all = AsyncMock(return_value={
        "news": [BraveNewsResult(title="Stocks edge higher", url="https://n.test/3")],
        "web": [BraveWebResult(title="Market overview", url="https://w.test/2")],
    })
    return Executor(fmp=fmp, brave=brave, polygon=polygon)


def _events(body: str) -> list[tuple[str, dict]]:
    parser = SSEParser()
    events = parser.feed(body) + parser.flush()
    return [(e.event, e.json()) for e in events]


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _override(llm: FakeLLM, executor: Executor | None = None) -> None:
    app.dependency_overrides[get_llm_factory] = lambda: (lambda api_key: llm)
    app.dependency_overrides[get_executor] = lambda: executor or _executor()


# ---------------------------------------------------------------------------
# Test: /plan-run
# ---------------------------------------------------------------------------


class TestPlanRun:
    def test_ticker_news_end_to_end(self, client):
        plan = json.dumps([{"title": "Get NVDA news", "description": "Latest headlines"}])
        _override(FakeLLM([plan, "Two positive NVDA headlines."]))

        response = client.post(
            "/plan-run", json={"query": "NVDA news", "openrouterKey": "k"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = _events(response.text)
        payloads = {name: payload for name, payload in events}
        results = payloads["executionResults"]["results"]

        assert len(results) == 1
        assert results[0]["provider"] in {p.value for p in NEWS_PROVIDERS}
        assert results[0]["step"]["status"] == "done"
        assert payloads["done"]["stepsCompleted"] == payloads["done"]["totalSteps"] == 1
        assert events[-1][0] == "done"

    def test_general_question_runs_combined_search(self, client):
        plan = json.dumps([
            {"title": "Market overview", "description": "How markets are doing"},
        ])
        _override(FakeLLM([plan, "Stocks edged higher."]))

        response = client.post("/plan-run", json={"query": "tell me about markets"})
        payloads = dict(_events(response.text))
        result = payloads["executionResults"]["results"][0]

        assert result["provider"] == "combined"
        assert set(result["data"]) == {"news", "web"}

    def test_planner_failure_uses_fallback_plan(self, client):
        _override(FakeLLM(["not json", "summary text"]))

        response = client.post("/plan-run", json={"query": "Any TSLA news?"})
        payloads = dict(_events(response.text))

        assert [s["title"] for s in payloads["plan"]["steps"]] == ["Get TSLA news"]
        assert payloads["done"]["success"] is True

    def test_missing_key_is_400(self, client, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "openai_compatible")
        monkeypatch.setattr(settings, "openrouter_api_key", "")
        app.dependency_overrides[get_executor] = _executor

        response = client.post("/plan-run", json={"query": "NVDA news"})

        assert response.status_code == 400
        assert "API key" in response.json()["detail"]

    def test_invalid_body_is_422(self, client):
        _override(FakeLLM([]))
        assert client.post("/plan-run", json={"query": ""}).status_code == 422
        assert client.post("/plan-run", json={"maxSteps": 3}).status_code == 422
        response = client.post("/plan-run", json={"query": "q", "maxSteps": 0})
        assert response.status_code == 422

    def test_max_steps_defaults_from_settings(self, client, monkeypatch):
        monkeypatch.setattr(settings, "default_max_steps", 2)
        monkeypatch.setattr(settings, "max_plan_steps", 20)
        llm = FakeLLM(["[]"])
        _override(llm)

        response = client.post("/plan-run", json={"query": "NVDA news"})

        assert response.status_code == 200
        assert "Plan up to 2 steps maximum" in llm.systems[0]

    def test_max_steps_above_default_is_accepted(self, client, monkeypatch):
        monkeypatch.setattr(settings, "default_max_steps", 2)
        monkeypatch.setattr(settings, "max_plan_steps", 20)
        llm = FakeLLM(["[]"])
        _override(llm)

        response = client.post("/plan-run", json={"query": "NVDA news", "maxSteps": 18})

        assert response.status_code == 200
        assert "Plan up to 18 steps maximum" in llm.systems[0]

    def test_max_steps_clamped_to_ceiling(self, client, monkeypatch):
        monkeypatch.setattr(settings, "max_plan_steps", 20)
        llm = FakeLLM(["[]"])
        _override(llm)

        response = client.post("/plan-run", json={"query": "NVDA news", "maxSteps": 25})

        assert response.status_code == 200
        assert "Plan up to 20 steps maximum" in llm.systems[0]


# ---------------------------------------------------------------------------
# Test: /answer
# ---------------------------------------------------------------------------


class TestAnswer:
    def test_streams_deltas(self, client):
        _override(FakeLLM([], chunks=["## NVDA\n", "Shares rose **4.5%**."]))

        response = client.post("/answer", json={
            "query": "How is NVDA doing?",
            "openrouterKey": "k",
            "conversationHistory": [{"role": "user", "content": "hi"}],
            "executionResults": [{
                "step": {"title": "Get NVDA quote", "description": "Price"},
                "provider": "fmp_quote",
                "data": {"symbol": "NVDA", "price": 890.25},
                "summary": "NVDA at $890.25",
            }],
        })

        assert response.status_code == 200
        events = _events(response.text)
        deltas = "".join(p["content"] for name, p in events if name == "delta")
        assert deltas == "## NVDA\nShares rose **4.5%**."
        assert events[0][0] == "status"
        assert events[-1] == ("done", {"success": True})

    def test_result_with_data_and_error_is_422(self, client):
        _override(FakeLLM([]))
        response = client.post("/answer", json={
            "query": "q",
            "executionResults": [{
                "step": {"title": "t", "description": "d"},
                "provider": "brave_web",
                "data": [{"title": "x"}],
                "error": "boom",
            }],
        })
        assert response.status_code == 422

    def test_result_without_data_or_error_is_422(self, client):
        _override(FakeLLM([]))
        response = client.post("/answer", json={
            "query": "q",
            "executionResults": [{
                "step": {"title": "t", "description": "d"},
                "provider": "fmp_quote",
                "summary": "NVDA at $890.25",
            }],
        })
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Test: /health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_reports_provider_availability(self, client):
        app.dependency_overrides[get_executor] = _executor
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == settings.app_version
        assert body["providers"] == {"fmp": False, "polygon": False, "brave": True}
