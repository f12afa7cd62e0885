"""Tests for API routes."""
import json

import pytest

from deep_research.api.deps import get_config
from deep_research.config import ResearchConfig


@pytest.fixture
def app():
    """App wired to a mock-mode research config."""
    from deep_research.main import app

    app.dependency_overrides[get_config] = lambda: ResearchConfig(mock_mode=True)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "deep-research-server"


def test_query_returns_report(client):
    response = client.post("/api/research/query", json={"query": "Quantum computing", "max_iterations": 1})
    assert response.status_code == 200
    report = response.json()["report"]
    assert "Quantum computing" in report
    assert "undefined" not in report


def test_query_rejects_invalid_iterations(client):
    response = client.post("/api/research/query", json={"query": "x", "max_iterations": 0})
    assert response.status_code == 422


def test_start_returns_queries(client):
    response = client.post("/api/research/start", json={"topic": "Bees"})
    assert response.status_code == 200
    data = response.json()
    assert data["fallback"] is False
    assert data["queries"][0]["query"] == "What is Bees?"


def test_start_requires_topic(client):
    response = client.post("/api/research/start", json={})
    assert response.status_code == 422


def test_search_returns_learnings_per_query(client):
    response = client.post(
        "/api/research/search",
        json={"queries": [{"query": "Bee decline", "research_goal": "causes"}], "parallel_search": True},
    )
    assert response.status_code == 200
    data = response.json()
    assert len(data["results"]) == 1
    assert data["results"][0]["sources"][0]["url"].startswith("https://example.com")
    assert data["learnings"] == data["results"][0]["learnings"]
    assert data["learnings"]


def test_review_returns_empty_list_when_done(client):
    response = client.post("/api/research/review", json={"topic": "Bees", "learnings": ["Bees pollinate."]})
    assert response.status_code == 200
    assert response.json()["queries"] == []


def test_report_uses_learnings(client):
    response = client.post(
        "/api/research/report",
        json={"topic": "Bees", "learnings": ["Bees pollinate crops."], "mode": "academic"},
    )
    assert response.status_code == 200
    assert "Bees pollinate crops." in response.json()["report"]


def test_stream_emits_progress_and_report(client):
    with client.stream(
        "POST", "/api/research/stream", json={"query": "Bees", "max_iterations": 1}
    ) as response:
        assert response.status_code == 200
        body = "".join(response.iter_text())

    events = [line.split(":", 1)[1].strip() for line in body.splitlines() if line.startswith("event:")]
    assert events[0] == "queries_generated"
    assert events[-1] == "research_complete"

    data_lines = [line.split(":", 1)[1].strip() for line in body.splitlines() if line.startswith("data:")]
    final = json.loads(data_lines[-1])
    assert "Bees" in final["report"]
