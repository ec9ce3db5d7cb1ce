"""Chat turn orchestration, chart data and narration."""

from agentcrm.chat.charts import build_chart_data
from agentcrm.chat.orchestrator import ChatOrchestrator, ChatReply

__all__ = ["ChatOrchestrator", "ChatReply", "build_chart_data"]
