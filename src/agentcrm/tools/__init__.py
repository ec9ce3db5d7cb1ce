"""CRM tool catalog: typed argument models and store-backed handlers."""

from agentcrm.tools.catalog import CATALOG, TOOL_NAMES, tool_definitions

__all__ = ["CATALOG", "TOOL_NAMES", "tool_definitions"]
