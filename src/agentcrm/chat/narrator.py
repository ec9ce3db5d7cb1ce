"""Narrator: turns a raw tool result into the reply the user reads.

Narration Rules:
- Runs only after a successful tool call
- Never shows ids, and shows timestamps only when the user asked about dates
- Leads with a count, then a bullet list of the key fields
- Falls back to the tool's own text when the narrator model is unavailable
"""

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from agentcrm.errors import LLMError
from agentcrm.llm.parsing import extract_json
from agentcrm.llm.planner import dumps_for_prompt
from agentcrm.llm.router import call_llm

logger = logging.getLogger(__name__)

MAX_HISTORY_MESSAGES = 6

NARRATOR_SYSTEM_PROMPT = """You are the assistant inside a CRM. A tool has just run for the user. Present its result clearly.

Output ONLY valid JSON: {"text": "<reply>"}"""

NARRATOR_USER_PROMPT_TEMPLATE = """The tool "{tool_name}" was executed with args: {args}

Result:
{result}

FORMATTING RULES, you MUST follow these:
1. NEVER show id fields (id, account_id, contact_id, deal_id, pipeline_id, team_id). They are internal UUIDs.
2. NEVER show timestamp fields (created_at, updated_at) unless the user asks about dates.
3. NEVER show empty arrays such as "tags: []".
4. Contacts: name, email, phone, role.
5. Accounts: name, industry, website.
6. Deals: name, amount, stage, status.
7. Use a bullet list, not tables with id columns.
8. Start with a summary count, then the key details.
9. If the result starts with a line beginning "⚠️", repeat that line word for word as the first line of your reply.

Good example:
"Found 3 contacts:
â¢ John Smith - john@example.com, Sales Manager
â¢ Jane Doe - jane@example.com, CEO
â¢ Bob Wilson - bob@example.com, Developer"

Output format (JSON only):
{{"text": "<reply>"}}"""


def build_narrator_messages(
    conversation: Sequence[Mapping[str, Any]],
    tool_name: str,
    args: Mapping[str, Any],
    result_text: str,
    structured: Mapping[str, Any] | None = None,
) -> list[dict[str, str]]:
    result = result_text
    if structured:
        result = f"{result_text}\n\n{dumps_for_prompt(structured, limit=4000)}"
    messages = [{"role": "system", "content": NARRATOR_SYSTEM_PROMPT}]
    for message in list(conversation)[-MAX_HISTORY_MESSAGES:]:
        role = message.get("role")
        if role in ("user", "assistant"):
            messages.append({"role": role, "content": str(message.get("content", ""))})
    messages.append(
        {
            "role": "user",
            "content": NARRATOR_USER_PROMPT_TEMPLATE.format(
                tool_name=tool_name,
                args=json.dumps(dict(args), default=str),
                result=result,
            ),
        }
    )
    return messages


def narrate_tool_result(
    conversation: Sequence[Mapping[str, Any]],
    tool_name: str,
    args: Mapping[str, Any],
    result_text: str,
    structured: Mapping[str, Any] | None = None,
    *,
    provider: str | None = None,
    timeout: int = 60,
) -> str:
    """Ask the narrator model for a user-facing reply; fall back to ``result_text``."""
    messages = build_narrator_messages(conversation, tool_name, args, result_text, structured)
    try:
        response = call_llm(messages, role="narrator", provider=provider, timeout=timeout)
    except LLMError as e:
        logger.warning("Narrator unavailable, returning raw tool text: %s", e)
        return result_text

    data = extract_json(response)
    if data is not None:
        text = data.get("text")
        if isinstance(text, str) and text.strip():
            return text.strip()
    if response and response.strip() and data is None:
        return response.strip()
    return result_text
