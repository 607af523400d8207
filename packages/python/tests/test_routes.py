"""Tests for the chat, health and dashboard endpoints with a scripted LLM."""
import json

import httpx
import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.main import app, main
from app.services import build_services, get_services
from datalens.client import DataLensClient
from datalens.common.config import (
    AgentConfig,
    BitbucketConfig,
    ChatMemoryConfig,
    OutlookConfig,
    RetryConfig,
    SplunkConfig,
)
from datalens.llm import ModelReply, ToolCallRequest
from datalens.telemetry import TelemetryService


class ScriptedLLM:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = 0

    async def complete(self, system, messages, tools):
        reply = self.replies[min(self.calls, len(self.replies) - 1)]
        self.calls += 1
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_services(llm):
    return build_services(
        agent_config=AgentConfig(),
        memory_config=ChatMemoryConfig(),
        splunk_config=SplunkConfig(),
        bitbucket_config=BitbucketConfig(),
        outlook_config=OutlookConfig(),
        retry_config=RetryConfig(attempts=1, wait_initial=0.0, wait_max=0.0),
        llm=llm,
        telemetry=TelemetryService(),
    )


@pytest.fixture
def services():
    llm = ScriptedLLM(
        ModelReply(tool_calls=[ToolCallRequest(id="c1", name="list_tables", arguments="{}")]),
        ModelReply(text="There are 3 tables.", prompt_tokens=12, completion_tokens=5),
    )
    services = make_services(llm)
    app.dependency_overrides[get_services] = lambda: services
    yield services
    app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    # No context manager: the lifespan (and its environment-built services) is not run.
    return TestClient(app)


def sse_records(body: str) -> list[str]:
    return [line[len("data: "):] for line in body.splitlines() if line.startswith("data: ")]


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "UP", "service": "DataLens", "version": "1.0.0"}


def test_chat_sync(client, services):
    resp = client.post("/api/v1/chat/sync", json={"message": "How many tables?", "sessionId": "s-1"})
    assert resp.status_code == 200
    assert resp.json() == {"sessionId": "s-1", "response": "There are 3 tables."}
    assert len(services.memory.get("s-1", 50)) == 4


def test_chat_sync_blank_session_id_is_generated(client):
    resp = client.post("/api/v1/chat/sync", json={"message": "hi", "sessionId": "  "})
    assert resp.status_code == 200
    assert resp.json()["sessionId"].strip()
    assert resp.json()["sessionId"] != "  "


def test_chat_rejects_blank_message(client):
    resp = client.post("/api/v1/chat/sync", json={"message": "   "})
    assert resp.status_code == 400


def test_chat_sync_error_maps_to_bad_gateway(client):
    failing = make_services(ScriptedLLM(RuntimeError("provider down")))
    app.dependency_overrides[get_services] = lambda: failing
    resp = client.post("/api/v1/chat/sync", json={"message": "hi"})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "provider down"


def test_chat_stream_emits_protocol_records(client):
    resp = client.post("/api/v1/chat/stream", json={"message": "How many tables?", "sessionId": "s-2"})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["x-session-id"] == "s-2"

    records = sse_records(resp.text)
    assert [r[0] for r in records] == ["9", "a", "0", "d"]
    assert json.loads(records[0][2:])["toolName"] == "list_tables"
    assert json.loads(records[1][2:])["result"]["tableCount"] == 3
    assert json.loads(records[2][2:]) == "There are 3 tables."
    assert json.loads(records[3][2:]) == {"finishReason": "STOP"}


def test_chat_stream_error_record(client):
    failing = make_services(ScriptedLLM(RuntimeError("provider down")))
    app.dependency_overrides[get_services] = lambda: failing
    resp = client.post("/api/v1/chat/stream", json={"message": "hi"})
    assert resp.status_code == 200
    assert sse_records(resp.text) == ['e:{"error":"provider down"}']


def test_delete_session(client, services):
    client.post("/api/v1/chat/sync", json={"message": "hi", "sessionId": "s-3"})
    assert "s-3" in services.memory
    resp = client.delete("/api/v1/chat/sessions/s-3")
    assert resp.json() == {"ok": True, "sessionId": "s-3"}
    assert "s-3" not in services.memory


def test_dashboard(client):
    client.post("/api/v1/chat/sync", json={"message": "How many tables?", "sessionId": "s-4"})
    data = client.get("/actuator/dashboard").json()
    assert data["application"] == "DataLens"
    assert data["sessions"] == {"active": 1, "maxAllowed": 1000}
    assert data["requests"]["byTool"] == {"list_tables": 1}
    assert data["llm"] == {"promptTokens": 12, "completionTokens": 5}
    assert data["errors"]["total"] == 0


@pytest.mark.asyncio
async def test_client_streams_and_rebuilds_message(services):
    transport = httpx.ASGITransport(app=app)
    async with DataLensClient(base_url="http://testserver", transport=transport) as dl_client:
        events = [e async for e in dl_client.send_message("How many tables?")]
        assert [e.type for e in events] == ["tool_call", "tool_result", "text", "finish"]
        message = dl_client.last_message
        assert message.content == "There are 3 tables."
        assert message.tool_calls[0].status == "complete"
        assert message.finish_reason == "STOP"
        assert dl_client.session_id in services.memory

        await dl_client.clear_session()
        assert dl_client.session_id not in services.memory


def test_server_entry_point_runs_uvicorn(monkeypatch):
    monkeypatch.delenv("DATALENS_HOST", raising=False)
    monkeypatch.setenv("DATALENS_PORT", "9090")
    with patch("app.main.uvicorn.run") as mock_run:
        main()
    mock_run.assert_called_once_with("app.main:app", host="0.0.0.0", port=9090)
