"""Intent extraction: decide whether a chat turn needs a CRM tool call.

The model sees the conversation, the tool catalog and the extraction rules,
and answers with one JSON object:

    {"needsTool": false, "response": "..."}
    {"needsTool": true, "toolName": "create_contact", "args": {...}}

Model output is recovered leniently (raw JSON, fenced block, first
``{...}`` span, then the raw text as a conversational reply) and then run
through deterministic guards so the extraction rules hold even when the
model ignores them:

- ``create_account`` without a name becomes a clarifying question
- tools that address one record by id are not emitted without that id
- ``create_interaction`` gets a normalized type and an absolute due date
- tools outside the available catalog are refused
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Literal, Protocol

from pydantic import Field

from agentcrm.dates import resolve_due_date
from agentcrm.llm.parsing import extract_json
from agentcrm.llm.router import call_llm
from agentcrm.models import CamelModel
from agentcrm.tools.args import normalize_interaction_type
from agentcrm.tools.catalog import CATALOG, describe_tools

logger = logging.getLogger(__name__)

DEFAULT_REPLY = "I'm here to help with your CRM. What would you like to do?"
ACCOUNT_NAME_QUESTION = "What's the name of the account you'd like to create?"
MAX_HISTORY_MESSAGES = 12

_PLACEHOLDER_IDS = {"", "unknown", "none", "null", "n/a", "?", "id", "tbd"}


class ConversationalIntent(CamelModel):
    needs_tool: Literal[False] = False
    response: str


class ToolIntent(CamelModel):
    needs_tool: Literal[True] = True
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


Intent = ConversationalIntent | ToolIntent


# Prompt templates

INTENT_SYSTEM_PROMPT_TEMPLATE = """You are the assistant inside a CRM. Decide whether the user's LAST message needs a CRM tool call. Output ONLY valid JSON. No markdown. No commentary.

Current local date and time: {now} ({weekday})

Available tools:
{tool_catalog}

Output format, exactly one of:
{{"needsTool": false, "response": "<reply to the user>"}}
{{"needsTool": true, "toolName": "<tool name>", "args": {{...}}}}

Rules:
- Use only tool names from the list above. Use snake_case argument names.
- Creating an account requires a name. If the user did not give one, do NOT call a tool; set needsTool to false and ask for the name.
- Any task, call, meeting, note, reminder or follow-up request maps to create_interaction.
  Choose type by the words used: call/phone -> "call"; meeting/schedule/appointment -> "meeting"; email -> "email"; reminder/note/task/to-do -> "note".
  Put what needs doing in "summary".
- Resolve relative dates ("tomorrow", "next Monday", "Friday at 3pm") into an absolute ISO-8601 local timestamp for "due_date", formatted YYYY-MM-DDTHH:MM:SS. If no time of day is given, use 09:00.
- update_*, delete_* and get_* tools need the record "id". Only use an id that appears earlier in the conversation. If you do not know the id, do NOT call the tool; ask the user which record they mean, or call a search or list tool first.
- Never invent ids, emails or amounts the user did not give.
- Questions that do not need CRM data get a short conversational reply.

Examples:
User: Add a contact John Smith, john@acme.com
{{"needsTool": true, "toolName": "create_contact", "args": {{"first_name": "John", "last_name": "Smith", "email": "john@acme.com"}}}}

User: Create a new account
{{"needsTool": false, "response": "Sure! What's the name of the account?"}}

User: Remind me to call Sarah tomorrow at 2pm
{{"needsTool": true, "toolName": "create_interaction", "args": {{"type": "call", "summary": "Call Sarah", "due_date": "{example_due}"}}}}

User: Show me all deals
{{"needsTool": true, "toolName": "list_deals", "args": {{}}}}

User: Update the Acme deal amount to 50000
{{"needsTool": true, "toolName": "search_crm", "args": {{"query": "Acme"}}}}

User: Hi there
{{"needsTool": false, "response": "Hello! I can help you manage accounts, contacts, deals and tasks. What would you like to do?"}}"""


def build_system_prompt(tool_names: Sequence[str], now: datetime) -> str:
    example_due = resolve_due_date("tomorrow at 2pm", now)
    return INTENT_SYSTEM_PROMPT_TEMPLATE.format(
        now=now.strftime("%Y-%m-%dT%H:%M:%S"),
        weekday=now.strftime("%A"),
        tool_catalog=describe_tools(list(tool_names)),
        example_due=example_due,
    )


def recover_intent_payload(text: str | None) -> dict[str, Any]:
    """Parse model output into an intent dict. Never raises."""
    data = extract_json(text)
    if data is not None:
        return data
    logger.info("Intent output was not JSON, treating it as a reply")
    return {"needsTool": False, "response": (text or "").strip()}


class IntentPlanner(Protocol):
    def plan(self, conversation: Sequence[dict[str, str]], tool_names: Sequence[str]) -> dict[str, Any]:
        ...


class LLMIntentPlanner:
    """Asks the intent model for a tool decision."""

    name = "intent_planner"

    def __init__(self, *, now: datetime | None = None, provider: str | None = None, timeout: int = 60):
        self.now = now
        self.provider = provider
        self.timeout = timeout

    def plan(self, conversation: Sequence[dict[str, str]], tool_names: Sequence[str]) -> dict[str, Any]:
        now = self.now or datetime.now()
        messages = [{"role": "system", "content": build_system_prompt(tool_names, now)}]
        for message in list(conversation)[-MAX_HISTORY_MESSAGES:]:
            role = message.get("role", "user")
            if role not in ("user", "assistant"):
                continue
            messages.append({"role": role, "content": str(message.get("content", ""))})
        response = call_llm(messages, role="intent", provider=self.provider, timeout=self.timeout)
        return recover_intent_payload(response)


def _missing_id(value: Any) -> bool:
    if value is None:
        return True
    text = str(value).strip()
    return text.lower() in _PLACEHOLDER_IDS or text.startswith("<") or "{" in text


def _requires_id(tool_name: str) -> bool:
    spec = CATALOG.get(tool_name)
    if spec is None:
        return False
    field = spec.args_model.model_fields.get("id")
    return field is not None and field.is_required()


def _entity_label(tool_name: str) -> str:
    _, _, rest = tool_name.partition("_")
    rest = rest.replace("_summary", "").replace("_stage", "")
    return rest.replace("_", " ") or "record"


def _clarify_record(tool_name: str) -> str:
    verb = tool_name.split("_", 1)[0]
    if tool_name in ("move_deal_stage", "close_deal"):
        verb = "update"
    entity = _entity_label(tool_name)
    return (
        f"Which {entity} would you like me to {verb}? I couldn't tell which record you mean. "
        f"You can ask me to search first, for example \"find the {entity} named ...\"."
    )


def apply_guards(
    payload: dict[str, Any],
    tool_names: Sequence[str],
    now: datetime | None = None,
) -> Intent:
    """Turn a recovered payload into an intent that respects the extraction rules."""
    needs_tool = bool(payload.get("needsTool", payload.get("needs_tool", False)))
    tool_name = payload.get("toolName") or payload.get("tool_name")
    if not needs_tool or not isinstance(tool_name, str) or not tool_name.strip():
        response = str(payload.get("response") or "").strip()
        return ConversationalIntent(response=response or DEFAULT_REPLY)

    tool_name = tool_name.strip()
    raw_args = payload.get("args", payload.get("arguments"))
    args = dict(raw_args) if isinstance(raw_args, dict) else {}

    if tool_name not in tool_names:
        logger.warning("Model chose unavailable tool %r", tool_name)
        return ConversationalIntent(
            response="Sorry, I can't do that yet. I can manage accounts, contacts, deals, pipelines, tasks and tags."
        )

    if tool_name == "create_account" and not str(args.get("name") or "").strip():
        return ConversationalIntent(response=ACCOUNT_NAME_QUESTION)

    if _requires_id(tool_name) and _missing_id(args.get("id")):
        return ConversationalIntent(response=_clarify_record(tool_name))

    if tool_name == "create_interaction":
        args["type"] = normalize_interaction_type(args.get("type")).value
        if "due_date" in args:
            due = resolve_due_date(args.get("due_date"), now)
            if due is None:
                logger.info("Dropping unresolvable due date %r", args.get("due_date"))
                args.pop("due_date")
            else:
                args["due_date"] = due

    return ToolIntent(tool_name=tool_name, args=args)


def extract_intent(
    conversation: Sequence[dict[str, str]],
    available_tool_names: Sequence[str],
    *,
    planner: IntentPlanner | None = None,
    now: datetime | None = None,
) -> Intent:
    """Classify the last user message as a tool call or a conversational reply.

    Raises:
        LLMError: If the model provider cannot be reached
    """
    planner = planner or LLMIntentPlanner(now=now)
    payload = planner.plan(conversation, available_tool_names)
    return apply_guards(payload, available_tool_names, now)
