"""
Integration tests for the candidate API

Uses FastAPI TestClient against the real app with a DetectionService backed
by a temporary SQLite database, a scripted browser agent and a scripted model.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from researchvault.api.app import app
from researchvault.bridge.messages import AnalyzeHistoryResponse
from researchvault.classification.client import ClassificationClient
from researchvault.detection.models import now_ms
from researchvault.detection.service import DetectionService, set_detection_service
from researchvault.llm.retry import LLMResponse

HEADERS = {"X-User-ID": "user-1"}


class StubAgent:
    def __init__(self, available=True):
        self.available = available

    async def probe(self, timeout=None):
        return self.available

    async def request_analysis(self, params, timeout=None):
        return AnalyzeHistoryResponse(
            success=True,
            entries=[
                {
                    "url": "https://arxiv.org/abs/1234",
                    "title": "A Study on X (2023) | arXiv",
                    "visitCount": 3,
                    "typedCount": 1,
                    "lastVisitTime": now_ms() - 24 * 60 * 60 * 1000,
                }
            ],
        )


async def history_model(prompt: str) -> LLMResponse:
    return LLMResponse('{"subject": "history", "confidence": 0.75, "reasoning": "dates"}', 8)


@pytest.fixture
def service(store):
    service = DetectionService(store=store, client=ClassificationClient(generate=history_model))
    set_detection_service(service)
    yield service
    set_detection_service(None)


@pytest.fixture
def client(service):
    service.orchestrator_for("user-1").agent = StubAgent()
    service.orchestrator_for("user-1").classifier.pacing_seconds = 0
    return TestClient(app)


def analyze(client):
    response = client.post("/api/candidates/analyze", headers=HEADERS)
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "llm" in data


def test_metrics_report_pipeline_counters(client):
    analyze(client)

    data = client.get("/health/metrics").json()
    assert data["counters"]["detection.analysis_completed"] == 1
    assert data["latencies"]["detection.analysis.latency"]["count"] == 1


def test_missing_user_header(client):
    response = client.get("/api/candidates")
    assert response.status_code == 401


def test_malformed_user_header(client):
    response = client.get("/api/candidates", headers={"X-User-ID": "bad user!"})
    assert response.status_code == 400


def test_empty_list(client):
    response = client.get("/api/candidates", headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"candidates": [], "count": 0}


def test_analyze_then_list(client):
    outcome = analyze(client)
    assert outcome == {"status": "completed", "new_count": 1, "error": None}

    data = client.get("/api/candidates", headers=HEADERS).json()
    assert data["count"] == 1
    candidate = data["candidates"][0]
    assert candidate["url"] == "https://arxiv.org/abs/1234"
    assert candidate["category"] == "academic"
    assert candidate["dismissed"] is False

    last_run = client.get("/api/candidates/last-run", headers=HEADERS).json()
    assert last_run["last_run"] is not None
    assert last_run["state"] == "idle"


def test_analyze_without_agent(client, service):
    service.orchestrator_for("user-1").agent = StubAgent(available=False)

    outcome = analyze(client)

    assert outcome["status"] == "agent_unavailable"
    assert client.get("/api/candidates/last-run", headers=HEADERS).json()["last_run"] is None


def test_classify_and_progress(client):
    analyze(client)

    summary = client.post("/api/candidates/classify", json={}, headers=HEADERS).json()
    assert summary == {"status": "completed", "classified": 1, "total": 1, "error": None}

    progress = client.get("/api/candidates/classify/progress", headers=HEADERS).json()
    assert progress == {"running": False, "processed": 1, "total": 1}

    candidate = client.get("/api/candidates", headers=HEADERS).json()["candidates"][0]
    assert candidate["subject"] == "history"
    assert candidate["ai_classified"] is True


def test_classify_rejects_bad_body(client):
    response = client.post(
        "/api/candidates/classify", json={"candidate_ids": "not-a-list"}, headers=HEADERS
    )
    assert response.status_code == 422
    body = response.json()
    assert body["invalid_fields"] == ["candidate_ids"]
    assert "Invalid request format" in body["detail"]


def test_list_limit_validation(client):
    response = client.get("/api/candidates?limit=0", headers=HEADERS)
    assert response.status_code == 422


def test_dismiss_flow(client):
    analyze(client)
    candidate_id = client.get("/api/candidates", headers=HEADERS).json()["candidates"][0]["id"]

    first = client.post(f"/api/candidates/{candidate_id}/dismiss", headers=HEADERS)
    second = client.post(f"/api/candidates/{candidate_id}/dismiss", headers=HEADERS)

    assert first.status_code == 200
    assert first.json()["changed"] is True
    assert second.status_code == 200
    assert second.json()["changed"] is False
    assert client.get("/api/candidates", headers=HEADERS).json()["count"] == 0
    dismissed = client.get("/api/candidates?dismissed=true", headers=HEADERS).json()
    assert dismissed["count"] == 1

    # A rescan does not bring it back
    assert analyze(client)["new_count"] == 0


def test_dismiss_unknown_candidate(client):
    response = client.post("/api/candidates/does-not-exist/dismiss", headers=HEADERS)
    assert response.status_code == 404


def test_dismiss_all(client):
    analyze(client)
    response = client.post("/api/candidates/dismiss-all", headers=HEADERS)
    assert response.json() == {"dismissed_count": 1}


def test_candidates_are_scoped_per_user(client, service):
    analyze(client)
    service.orchestrator_for("user-2").agent = StubAgent(available=False)

    data = client.get("/api/candidates", headers={"X-User-ID": "user-2"}).json()
    assert data["count"] == 0


def test_agent_socket_rejects_invalid_user(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/agent/bad$user") as ws:
            ws.receive_text()


def test_agent_socket_accepts_frames(client):
    with client.websocket_connect("/ws/agent/user-1") as ws:
        ws.send_text("not json")
        ws.send_json({"type": "RESEARCHVAULT_EXTENSION_RESPONSE"})
