"""Tool dispatch with tenant injection."""

from agentcrm.dispatch.dispatcher import TENANT_REQUIRED, TENANT_SCOPED, ToolDispatcher

__all__ = ["TENANT_REQUIRED", "TENANT_SCOPED", "ToolDispatcher"]
