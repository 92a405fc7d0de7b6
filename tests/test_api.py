from __future__ import annotations

import re

import pytest
from fastapi.testclient import TestClient

from autodiagram.agents import GenerationAgent, PlannerAgent, RepairAgent
from autodiagram.errors import GENERIC_FAILURE_MESSAGE
from autodiagram.pipeline import DiagramPipeline
from autodiagram.render import HeaderRenderProbe
from autodiagram.server import (
    app,
    get_generator,
    get_history_store,
    get_pipeline,
    get_planner,
    get_repairer,
    get_session_store,
)
from autodiagram.store import HistoryEvents, HistoryStore, InMemoryKeyValueStore, SessionStore


AUTH_PROMPT = "Show me how user authentication works"

MARKUP = {
    "sequence": "sequenceDiagram\n    User->>App: Login",
    "flowchart": "flowchart TD\n    A[Login] --> B[Home]",
    "gantt": "gantt\n    title Release\n    section Build\n    Compile :a1, 2024-01-01, 3d",
}

_TYPE_RE = re.compile(r"Generate a \*\*(\w+)\*\* chart")


class FakeModel:
    name = "fake:model"

    def __init__(self, answer):
        self.answer = answer

    async def complete_json(self, system, messages):
        result = self.answer(messages)
        if isinstance(result, BaseException):
            raise result
        return result


def _plans(messages):
    return [
        {"type": "sequence", "description": "Login handshake"},
        {"type": "flowchart", "description": "Validation decisions"},
    ]


def _generate(messages):
    chart_type = _TYPE_RE.search(messages[-1]["content"]).group(1)
    if chart_type == "gantt":
        return RuntimeError("upstream 500: secret-raw-detail")
    return {"type": chart_type, "description": f"{chart_type} chart", "chart": f"```mermaid\n{MARKUP[chart_type]}\n```"}


def _repair(messages):
    return {"chart": "flowchart TD\n    A[Fixed] --> B", "explanation": "Closed the bracket"}


@pytest.fixture()
def client():
    kv = InMemoryKeyValueStore()
    sessions = SessionStore(kv)
    history = HistoryStore(kv, HistoryEvents())
    planner = PlannerAgent(FakeModel(_plans))
    generator = GenerationAgent(FakeModel(_generate))
    repairer = RepairAgent(FakeModel(_repair))
    pipeline = DiagramPipeline(planner, generator, repairer, HeaderRenderProbe(), sessions, history)

    app.dependency_overrides[get_planner] = lambda: planner
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_repairer] = lambda: repairer
    app.dependency_overrides[get_session_store] = lambda: sessions
    app.dependency_overrides[get_history_store] = lambda: history
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_unsupported_chart_type_is_rejected(client):
    resp = client.post("/api/mermaid", json={"chartType": "pie"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "unsupported_chart_type"


def test_missing_field_is_invalid_request(client):
    resp = client.post("/api/mermaid/fix", json={"chartType": "flowchart", "error": "Parse error on line 2"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_request"
    assert body["message"].startswith("Invalid request:")


def test_generate_single_chart_strips_fences(client):
    resp = client.post(
        "/api/mermaid",
        json={"chartType": "sequence", "originalUserMessage": AUTH_PROMPT, "planDescription": "Login handshake"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"type": "sequence", "description": "sequence chart", "chart": MARKUP["sequence"]}


def test_batch_returns_id_per_chart(client):
    resp = client.post("/api/mermaid/batch", json={"charts": [{"chartType": "sequence"}, {"chartType": "flowchart"}]})
    assert resp.status_code == 200
    results = resp.json()["results"]
    assert [item["chart"]["type"] for item in results] == ["sequence", "flowchart"]
    assert all(item["id"] for item in results)


def test_batch_failure_returns_generic_message(client):
    resp = client.post("/api/mermaid/batch", json={"charts": [{"chartType": "sequence"}, {"chartType": "gantt"}]})
    assert resp.status_code == 502
    assert resp.json() == {"error": "upstream_model_error", "message": GENERIC_FAILURE_MESSAGE}
    assert "secret-raw-detail" not in resp.text


def test_fix_endpoint(client):
    resp = client.post(
        "/api/mermaid/fix",
        json={"chartType": "flowchart", "chart": "flowchart TD\n    A[Fixed --> B", "error": "Parse error on line 2"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["type"] == "flowchart"
    assert body["explanation"] == "Closed the bracket"


def test_planner_endpoint(client):
    resp = client.post("/api/planner", json={"messages": [{"role": "user", "content": AUTH_PROMPT}]})
    assert resp.status_code == 200
    assert [plan["type"] for plan in resp.json()] == ["sequence", "flowchart"]

    assert client.post("/api/planner", json={"messages": []}).status_code == 400


def test_session_flow(client):
    resp = client.post("/api/sessions", json={"prompt": AUTH_PROMPT})
    assert resp.status_code == 200
    created = resp.json()
    session_id, result_id = created["sessionId"], created["resultId"]

    status = client.get(f"/api/sessions/{session_id}/status").json()
    assert status["completed"] is True
    assert status["status"] == "completed"
    assert [c["status"] for c in status["charts"]] == ["completed", "completed"]

    session = client.get(f"/api/sessions/{session_id}").json()
    result = session["results"][0]
    assert result["id"] == result_id
    assert len(result["charts"]) == 2
    chart = result["charts"][0]
    assert chart["currentVersion"] == 0
    assert chart["versions"][0]["version"] == 1

    base = f"/api/sessions/{session_id}/results/{result_id}/charts/{chart['id']}"
    bad = client.put(f"{base}/current-version", json={"versionIndex": 3})
    assert bad.status_code == 400
    assert bad.json()["error"] == "version_out_of_range"

    fixed = client.post(f"{base}/fix", json={"advance": True})
    assert fixed.status_code == 200
    assert len(fixed.json()["versions"]) == 2
    assert fixed.json()["currentVersion"] == 1

    back = client.put(f"{base}/current-version", json={"versionIndex": 0})
    assert back.json()["currentVersion"] == 0

    assert [s["id"] for s in client.get("/api/sessions").json()] == [session_id]
    history = client.get("/api/history").json()
    assert [entry["id"] for entry in history] == [session_id]


def test_sessions_from_different_clients_each_complete(client):
    first = client.post("/api/sessions", json={"prompt": AUTH_PROMPT}).json()["sessionId"]
    second = client.post("/api/sessions", json={"prompt": "Draw the deployment pipeline"}).json()["sessionId"]
    for session_id in (first, second):
        assert client.get(f"/api/sessions/{session_id}/status").json()["completed"] is True
    assert {entry["id"] for entry in client.get("/api/history").json()} == {first, second}


def test_abandoned_run_falls_back_to_stored_status(client):
    session_id = client.post("/api/sessions", json={"prompt": AUTH_PROMPT}).json()["sessionId"]
    assert client.delete(f"/api/sessions/{session_id}/run").status_code == 204
    status = client.get(f"/api/sessions/{session_id}/status").json()
    assert status["completed"] is True
    assert status["charts"] == []


def test_unknown_session_is_404(client):
    resp = client.get("/api/sessions/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"] == "session_not_found"
    assert client.get("/api/sessions/does-not-exist/status").status_code == 404


def test_sync_session_with_stale_revision_conflicts(client):
    session_id = client.post("/api/sessions", json={"prompt": AUTH_PROMPT}).json()["sessionId"]
    revision = client.get(f"/api/sessions/{session_id}").json()["revision"]

    ok = client.patch(f"/api/sessions/{session_id}", json={"prompt": "Renamed", "expectedRevision": revision})
    assert ok.status_code == 200
    assert ok.json()["prompt"] == "Renamed"

    stale = client.patch(f"/api/sessions/{session_id}", json={"prompt": "Mine", "expectedRevision": revision})
    assert stale.status_code == 409
    assert stale.json()["error"] == "concurrent_update"


def test_chart_commands(client):
    assert client.get("/api/chart-commands", params={"prefix": "/se"}).json() == [
        {"command": "/sequence", "type": "sequence", "description": "Create a sequence diagram"}
    ]
    assert len(client.get("/api/chart-commands").json()) == 10
    assert client.get("/api/chart-commands", params={"prefix": "/flowchart "}).json() == []
