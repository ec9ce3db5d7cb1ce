"""Tool registration primitives shared by the handler modules."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from agentcrm.models import ToolResult
from agentcrm.store.record_store import Filter, Query, RecordStore

Handler = Callable[[RecordStore, Any], ToolResult]


@dataclass(frozen=True)
class ToolSpec:
    """A named CRM operation with its argument model and handler."""

    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler

    def definition(self) -> dict[str, Any]:
        """JSON-schema tool definition for clients and the intent prompt."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return {"name": self.name, "description": self.description, "inputSchema": schema}


def tenant_filter(query: Query, team_id: str | None) -> Query:
    """Restrict a list query to one tenant, or to unscoped rows when none resolved."""
    if team_id:
        return query.where("team_id", "eq", team_id)
    return query.where("team_id", "is_null")


def get_owned(store: RecordStore, collection: str, record_id: str, team_id: str | None) -> dict[str, Any] | None:
    """Fetch a record, hiding rows that belong to a different tenant.

    Rows without a team stay visible to every caller; a caller without a
    team sees only those.
    """
    row = store.get(collection, record_id)
    if row is None:
        return None
    owner = row.get("team_id")
    if owner and owner != team_id:
        return None
    return row


def not_found(label: str, record_id: str) -> ToolResult:
    return ToolResult.error(f"{label} not found: {record_id}")


def delete_links(store: RecordStore, column: str, record_id: str) -> int:
    return store.delete_where("interactions", [Filter(column, "eq", record_id)])


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"
