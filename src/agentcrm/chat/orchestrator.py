"""One chat turn: intent -> dispatcher -> chart data -> narrated reply."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from agentcrm.chat.charts import build_chart_data
from agentcrm.chat.narrator import narrate_tool_result
from agentcrm.dispatch.dispatcher import ToolDispatcher
from agentcrm.models import CamelModel
from agentcrm.planning.intent import ConversationalIntent, IntentPlanner, LLMIntentPlanner, extract_intent
from agentcrm.tenancy import CallerContext

logger = logging.getLogger(__name__)

WARNING_MARK = "⚠️"


class ChatReply(CamelModel):
    text: str
    structured_content: dict[str, Any] | None = None
    chart_data: dict[str, Any] | None = None
    tool_name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def leading_warning(text: str) -> str | None:
    """The first paragraph of a tool result when it is a warning."""
    if not text.startswith(WARNING_MARK):
        return None
    return text.split("\n\n", 1)[0]


def last_user_message(messages: Sequence[Mapping[str, Any]]) -> str:
    for message in reversed(list(messages)):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


class ChatOrchestrator:
    """Runs chat turns against one dispatcher.

    Model provider failures (``LLMError``) from the intent step propagate;
    the API layer maps them to a 502.
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        *,
        intent_planner: IntentPlanner | None = None,
        narrate: bool = True,
        provider: str | None = None,
        now: datetime | None = None,
        timeout: int = 60,
    ):
        self.dispatcher = dispatcher
        self.intent_planner = intent_planner or LLMIntentPlanner(now=now, provider=provider, timeout=timeout)
        self.timeout = timeout
        self.narrate = narrate
        self.provider = provider
        self.now = now

    def run_turn(self, messages: Sequence[Mapping[str, Any]], caller: CallerContext | None = None) -> ChatReply:
        caller = caller or CallerContext.anonymous()
        conversation = [dict(m) for m in messages]
        intent = extract_intent(
            conversation,
            self.dispatcher.tool_names,
            planner=self.intent_planner,
            now=self.now,
        )
        if isinstance(intent, ConversationalIntent):
            return ChatReply(text=intent.response)

        tool_name = intent.tool_name
        result = self.dispatcher.dispatch(tool_name, intent.args, caller)
        structured = result.structured_content

        if result.is_error:
            if structured and "duplicateMatches" in structured:
                return ChatReply(text=result.text, structured_content=structured, tool_name=tool_name)
            logger.info("Tool %s returned an error: %s", tool_name, result.text)
            return ChatReply(
                text=f"I tried to {tool_name} but encountered an error: {result.text}",
                structured_content=structured,
                tool_name=tool_name,
            )

        chart_data = build_chart_data(last_user_message(conversation), structured)
        text = result.text
        if self.narrate:
            text = narrate_tool_result(
                conversation,
                tool_name,
                intent.args,
                result.text,
                structured,
                provider=self.provider,
                timeout=self.timeout,
            )
            warning = leading_warning(result.text)
            if warning and warning not in text:
                text = f"{warning}\n\n{text}"
        return ChatReply(text=text, structured_content=structured, chart_data=chart_data, tool_name=tool_name)
