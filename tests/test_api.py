"""Tests for the FastAPI backend."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest
from fastapi.testclient import TestClient

from agentcrm.api import create_app
from agentcrm.config import AppConfig
from agentcrm.errors import LLMError

from conftest import seed

SECRET = "api-test-secret-with-at-least-32-bytes"


def bearer(user_id="user-a", secret=SECRET):
    token = jwt.encode(
        {"sub": user_id, "aud": "authenticated", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app(tmp_path):
    app = create_app(db_path=tmp_path / "api.duckdb", config=AppConfig(jwt_secret=SECRET))
    app.state.ids = seed(app.state.store)
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def intent(payload):
    return patch("agentcrm.planning.intent.call_llm", return_value=json.dumps(payload))


class TestHealthAndTools:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["db_path"].endswith("api.duckdb")

    def test_tool_catalog(self, client):
        tools = client.get("/api/mcp/tools").json()["tools"]

        names = {tool["name"] for tool in tools}
        assert {"create_contact", "list_deals", "merge_tags", "search_crm"} <= names


class TestCallTool:
    def test_missing_name(self, client):
        response = client.post("/api/mcp/call-tool", json={"arguments": {}})

        assert response.status_code == 400
        assert response.json() == {"error": "Tool name is required"}

    def test_bearer_token_scopes_the_call(self, client):
        response = client.post(
            "/api/mcp/call-tool", json={"name": "list_deals", "arguments": {}}, headers=bearer()
        )

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["isError"] is False
        assert len(result["structuredContent"]["deals"]) == 3

    def test_body_token_is_accepted(self, client):
        token = bearer()["Authorization"].split(" ", 1)[1]

        response = client.post(
            "/api/mcp/call-tool", json={"name": "list_accounts", "callerToken": token}
        )

        names = {a["name"] for a in response.json()["result"]["structuredContent"]["accounts"]}
        assert names == {"Acme Corp", "Globex", "Initech"}

    def test_anonymous_caller_sees_no_team_rows(self, client):
        response = client.post("/api/mcp/call-tool", json={"name": "list_deals"})

        assert response.json()["result"]["structuredContent"]["deals"] == []

    def test_invalid_token_is_rejected(self, client):
        response = client.post(
            "/api/mcp/call-tool",
            json={"name": "list_deals"},
            headers=bearer(secret="some-other-secret-that-is-long-enough"),
        )

        assert response.status_code == 401
        assert "Invalid token" in response.json()["error"]

    def test_tool_errors_stay_in_the_envelope(self, client):
        response = client.post("/api/mcp/call-tool", json={"name": "nope"})

        assert response.status_code == 200
        assert response.json()["result"] == {
            "content": [{"type": "text", "text": "Unknown tool: nope"}],
            "isError": True,
        }


class TestChat:
    def test_tool_turn(self, client):
        messages = [{"role": "user", "content": "show revenue by stage"}]
        with intent({"needsTool": True, "toolName": "list_deals", "args": {}}), patch(
            "agentcrm.chat.narrator.call_llm", return_value='{"text": "You have 3 deals."}'
        ):
            response = client.post("/api/chat", json={"messages": messages}, headers=bearer())

        assert response.status_code == 200
        body = response.json()
        assert body["text"] == "You have 3 deals."
        assert body["toolName"] == "list_deals"
        assert body["chartData"]["type"] == "bar"

    def test_conversational_turn(self, client):
        with intent({"needsTool": False, "response": "Hello! How can I help?"}):
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.json()["text"] == "Hello! How can I help?"

    def test_provider_outage_is_502(self, client):
        with patch("agentcrm.planning.intent.call_llm", side_effect=LLMError("refused", provider="ollama")):
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 502
        assert "unavailable" in response.json()["error"]

    def test_unexpected_failure_is_generic(self, client, app):
        with patch.object(app.state.orchestrator, "run_turn", side_effect=RuntimeError("boom")):
            response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert response.json() == {"error": "Sorry, I encountered an error."}

    def test_empty_messages_are_rejected(self, client):
        response = client.post("/api/chat", json={"messages": []})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")


class TestAnalytics:
    def test_deals_by_stage(self, client):
        plan = {"table": "deals", "aggregation": "count", "groupBy": "stage", "chartType": "bar", "title": "Deals"}
        with patch("agentcrm.llm.planner.call_llm", return_value=json.dumps(plan)):
            response = client.post("/api/analytics", json={"question": "Show deals by stage"}, headers=bearer())

        assert response.status_code == 200
        body = response.json()
        assert sorted((p["stage"], p["count"]) for p in body["data"]) == [("Discovery", 2), ("Proposal", 1)]
        assert body["config"]["xAxis"] == "stage"

    def test_no_rows_is_404(self, client):
        plan = {"table": "contacts"}
        with patch("agentcrm.llm.planner.call_llm", return_value=json.dumps(plan)):
            response = client.post("/api/analytics", json={"query": "list contacts"})

        assert response.status_code == 404
        assert response.json() == {"error": "No data found for this query"}

    def test_unplannable_question_is_422(self, client):
        with patch("agentcrm.llm.planner.call_llm", return_value="I don't know"):
            response = client.post("/api/analytics", json={"question": "???"}, headers=bearer())

        assert response.status_code == 422


class TestTranscriptIngest:
    def test_missing_text(self, client):
        response = client.post("/api/ingest/transcript", json={"text": "  "})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing text"}

    def test_ingest(self, client, app):
        extraction = {
            "summary": "Intro with Maria",
            "sentiment": "positive",
            "contact": {"firstName": "Maria", "lastName": "Lopez"},
            "deal": None,
            "nextSteps": [],
        }
        with patch("agentcrm.llm.planner.call_llm", return_value=json.dumps(extraction)):
            response = client.post(
                "/api/ingest/transcript",
                json={"text": "Met Maria Lopez today.", "accountId": app.state.ids["acme"]},
                headers=bearer(),
            )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        contact = app.state.store.get("contacts", body["contact_id"])
        assert contact["account_id"] == app.state.ids["acme"]
        assert contact["team_id"] == "team-a"
