"""The closed catalog of CRM tools, keyed by tool name."""

from typing import Any

from agentcrm.tools.base import ToolSpec
from agentcrm.tools.handlers import accounts, contacts, deals, interactions, pipelines, search, tags

CATALOG: dict[str, ToolSpec] = {
    spec.name: spec
    for module in (accounts, contacts, deals, pipelines, interactions, tags, search)
    for spec in module.TOOLS
}

TOOL_NAMES: tuple[str, ...] = tuple(CATALOG)


def tool_definitions() -> list[dict[str, Any]]:
    return [spec.definition() for spec in CATALOG.values()]


def describe_tools(names: list[str] | tuple[str, ...] | None = None) -> str:
    """One line per tool with its required and optional argument names."""
    lines = []
    for name in names or TOOL_NAMES:
        spec = CATALOG.get(name)
        if spec is None:
            continue
        fields = spec.args_model.model_fields
        required = [f for f, info in fields.items() if info.is_required()]
        optional = [f for f, info in fields.items() if not info.is_required() and f != "team_id"]
        parts = []
        if required:
            parts.append("required: " + ", ".join(required))
        if optional:
            parts.append("optional: " + ", ".join(optional))
        suffix = f" ({'; '.join(parts)})" if parts else ""
        lines.append(f"- {name}: {spec.description}{suffix}")
    return "\n".join(lines)
