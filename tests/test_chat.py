"""Tests for chat turns and the narrator."""

import json
from unittest.mock import patch

import pytest

from agentcrm.chat import ChatOrchestrator
from agentcrm.chat.narrator import build_narrator_messages, narrate_tool_result
from agentcrm.errors import LLMError


class ScriptedIntent:
    """Intent planner that always answers with one payload."""

    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def plan(self, conversation, tool_names):
        self.calls.append((conversation, tool_names))
        return self.payload


def orchestrator(dispatcher, payload, **kwargs):
    kwargs.setdefault("narrate", False)
    return ChatOrchestrator(dispatcher, intent_planner=ScriptedIntent(payload), **kwargs)


def user(text):
    return [{"role": "user", "content": text}]


# =============================================================================
# Orchestrator
# =============================================================================

class TestChatTurn:
    def test_conversational_reply(self, dispatcher):
        reply = orchestrator(dispatcher, {"needsTool": False, "response": "Hi there"}).run_turn(user("hello"))

        assert reply.to_payload() == {
            "text": "Hi there",
            "structuredContent": None,
            "chartData": None,
            "toolName": None,
        }

    def test_guard_question_is_returned(self, dispatcher):
        chat = orchestrator(dispatcher, {"needsTool": True, "toolName": "create_account", "args": {}})

        reply = chat.run_turn(user("create an account"))

        assert reply.text == "What's the name of the account you'd like to create?"
        assert reply.tool_name is None

    def test_tool_result_without_narration(self, dispatcher, team_a_caller):
        chat = orchestrator(dispatcher, {"needsTool": True, "toolName": "list_deals", "args": {"stage": "Proposal"}})

        reply = chat.run_turn(user("proposal deals"), team_a_caller)

        assert reply.text == "Found 1 deal(s)"
        assert reply.tool_name == "list_deals"
        assert [d["name"] for d in reply.structured_content["deals"]] == ["Initech Renewal"]
        assert reply.chart_data is None

    def test_revenue_by_stage_chart(self, dispatcher, team_a_caller):
        chat = orchestrator(dispatcher, {"needsTool": True, "toolName": "list_deals", "args": {}})

        reply = chat.run_turn(user("show revenue by stage"), team_a_caller)

        data = sorted(reply.chart_data["data"], key=lambda p: p["name"])
        assert data == [
            {"name": "Discovery", "value": 3000.0, "count": 2},
            {"name": "Proposal", "value": 5000.0, "count": 1},
        ]

    def test_tool_error_is_explained(self, dispatcher):
        chat = orchestrator(dispatcher, {"needsTool": True, "toolName": "get_deal", "args": {"id": "d-404"}})

        reply = chat.run_turn(user("show deal d-404"))

        assert reply.text == "I tried to get_deal but encountered an error: Deal not found: d-404"

    def test_duplicate_block_passes_through(self, dispatcher, ids, team_a_caller):
        chat = orchestrator(
            dispatcher,
            {
                "needsTool": True,
                "toolName": "create_contact",
                "args": {"first_name": "John", "last_name": "Smith", "email": "john@acme.com"},
            },
        )

        reply = chat.run_turn(user("add John Smith john@acme.com"), team_a_caller)

        assert reply.text.startswith("⚠️ Strong duplicate detected")
        assert reply.structured_content["duplicateMatches"][0]["id"] == ids["john"]
        assert reply.tool_name == "create_contact"

    def test_reply_is_narrated(self, dispatcher, team_a_caller):
        chat = orchestrator(
            dispatcher, {"needsTool": True, "toolName": "list_accounts", "args": {}}, narrate=True
        )

        with patch("agentcrm.chat.narrator.call_llm", return_value='{"text": "Found 3 accounts:\\n• Acme Corp"}'):
            reply = chat.run_turn(user("list accounts"), team_a_caller)

        assert reply.text == "Found 3 accounts:\n• Acme Corp"

    @pytest.mark.parametrize(
        "narrated",
        ["Created Jane Doe.", "⚠️ Possible duplicate detected: Name and account match. Please review before creating.\n\nCreated Jane Doe."],
    )
    def test_duplicate_warning_survives_narration(self, dispatcher, ids, team_a_caller, narrated):
        args = {"first_name": "Jane", "last_name": "Doe", "account_id": ids["globex"]}
        chat = orchestrator(dispatcher, {"needsTool": True, "toolName": "create_contact", "args": args}, narrate=True)

        with patch("agentcrm.chat.narrator.call_llm", return_value=json.dumps({"text": narrated})):
            reply = chat.run_turn(user("add Jane Doe at Globex"), team_a_caller)

        assert reply.text == (
            "⚠️ Possible duplicate detected: Name and account match. Please review before creating."
            "\n\nCreated Jane Doe."
        )

    def test_intent_provider_failure_propagates(self, dispatcher):
        chat = ChatOrchestrator(dispatcher, narrate=False)

        with patch("agentcrm.planning.intent.call_llm", side_effect=LLMError("down", provider="ollama")):
            with pytest.raises(LLMError):
                chat.run_turn(user("list accounts"))


# =============================================================================
# Narrator
# =============================================================================

class TestNarrator:
    CONVERSATION = [{"role": "user", "content": "list contacts"}]

    def test_plain_text_reply_is_used(self):
        with patch("agentcrm.chat.narrator.call_llm", return_value="  Found 2 contacts.  "):
            text = narrate_tool_result(self.CONVERSATION, "list_contacts", {}, "Found 2 contact(s)")

        assert text == "Found 2 contacts."

    def test_provider_failure_falls_back_to_tool_text(self):
        with patch("agentcrm.chat.narrator.call_llm", side_effect=LLMError("timeout", provider="ollama")):
            text = narrate_tool_result(self.CONVERSATION, "list_contacts", {}, "Found 2 contact(s)")

        assert text == "Found 2 contact(s)"

    def test_json_without_text_falls_back(self):
        with patch("agentcrm.chat.narrator.call_llm", return_value='{"reply": "x"}'):
            text = narrate_tool_result(self.CONVERSATION, "list_contacts", {}, "Found 2 contact(s)")

        assert text == "Found 2 contact(s)"

    def test_narrator_role_is_used(self):
        with patch("agentcrm.chat.narrator.call_llm", return_value='{"text": "ok"}') as mock_llm:
            narrate_tool_result(self.CONVERSATION, "list_contacts", {}, "Found 0 contact(s)")

        assert mock_llm.call_args.kwargs["role"] == "narrator"

    def test_messages_keep_recent_history_and_structured_result(self):
        conversation = [{"role": "system", "content": "x"}] + [
            {"role": "user", "content": f"u{i}"} for i in range(10)
        ]

        messages = build_narrator_messages(
            conversation, "list_deals", {"stage": "Proposal"}, "Found 1 deal(s)", {"deals": [{"name": "Initech Renewal"}]}
        )

        assert messages[0]["role"] == "system"
        assert [m["content"] for m in messages[1:-1]] == [f"u{i}" for i in range(4, 10)]
        prompt = messages[-1]["content"]
        assert 'The tool "list_deals" was executed with args: {"stage": "Proposal"}' in prompt
        assert "Initech Renewal" in prompt
