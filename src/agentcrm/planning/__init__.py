"""Intent extraction for the chat flow."""

from agentcrm.planning.intent import ConversationalIntent, ToolIntent, extract_intent

__all__ = ["ConversationalIntent", "ToolIntent", "extract_intent"]
