"""
Tests for the HTTP layer.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import ScriptedLLM
from lifeagent.application.api.api_server import create_app
from lifeagent.domain.errors import LLMUnavailableError, NoUsableReplyError, PlanGenerationError


def _sse_payloads(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def client(make_orchestrator):
    app = create_app(make_orchestrator(ScriptedLLM(agent=["Hi there!"])))
    with TestClient(app) as client:
        yield client


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_tool_catalog(client) -> None:
    body = client.get("/api/v1/tools").json()

    assert body["stats"]["total"] == len(body["tools"])
    assert body["tools"][0]["category"] == "system"
    names = {t["name"] for t in body["tools"]}
    assert {"update_schedule_block", "create_task", "divide"} <= names


def test_chat_returns_reply_and_state(client) -> None:
    response = client.post("/api/v1/agent/chat", json={"message": "hello", "threadId": "abc"})

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == "Hi there!"
    assert body["threadId"] == "abc"
    assert "expiresAt" in body["conversationState"]


def test_chat_accepts_history_and_tampered_state(client) -> None:
    response = client.post("/api/v1/agent/chat", json={
        "message": "and now?",
        "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        "state": {"version": 99, "expiresAt": "2999-01-01T00:00:00Z"},
    })

    assert response.status_code == 200
    assert response.json()["conversationState"]["version"] == 1


def test_chat_rejects_empty_message(client) -> None:
    response = client.post("/api/v1/agent/chat", json={"message": ""})

    assert response.status_code == 422


def test_chat_stream(client) -> None:
    response = client.post("/api/v1/agent/chat/stream", json={"message": "hello"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _sse_payloads(response.text)
    assert events[-1]["type"] == "content"
    assert events[-1]["done"] is True
    assert events[-2]["type"] == "state_update"
    assert "".join(e.get("content", "") for e in events if e["type"] == "content") == "Hi there!"


def test_rejected_plan_streams_cancellation(client) -> None:
    plan = {"summary": "Drop sync", "steps": [{"id": "step1", "action": "delete_schedule_block",
                                              "params": {"blockId": 1}}]}

    response = client.post("/api/v1/agent/plan/execute", json={"plan": plan, "approved": False})

    events = _sse_payloads(response.text)
    assert [e["type"] for e in events] == ["execution_complete"]
    assert events[0]["success"] is False


def test_rejected_action(client) -> None:
    action = {"operation": "create", "params": {"title": "Buy milk"}}

    response = client.post("/api/v1/agent/action/execute", json={"action": action, "approved": False})

    assert response.status_code == 200
    assert response.json()["cancelled"] is True


def test_chat_maps_orchestration_errors(client) -> None:
    orchestrator = client.app.state.orchestrator

    orchestrator.run_turn = AsyncMock(side_effect=LLMUnavailableError("provider down"))
    unavailable = client.post("/api/v1/agent/chat", json={"message": "hello"})
    orchestrator.run_turn = AsyncMock(side_effect=NoUsableReplyError("no reply"))
    failed = client.post("/api/v1/agent/chat", json={"message": "hello"})

    assert unavailable.status_code == 503
    assert failed.status_code == 500


def test_plan_generation_failure(client) -> None:
    client.app.state.orchestrator.propose_plan = AsyncMock(side_effect=PlanGenerationError("no valid plan"))

    response = client.post("/api/v1/agent/plan", json={"message": "reorganise everything"})

    assert response.status_code == 422
    assert response.json()["detail"] == "no valid plan"
