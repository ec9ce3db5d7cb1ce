"""Interaction (activity / task) tools."""

from agentcrm.models import ToolResult
from agentcrm.store.record_store import Query, RecordStore
from agentcrm.tools.args import (
    CreateInteractionArgs,
    ListInteractionsArgs,
    RecordIdArgs,
    UpdateInteractionArgs,
)
from agentcrm.tools.base import ToolSpec, get_owned, not_found, tenant_filter


def create_interaction(store: RecordStore, args: CreateInteractionArgs) -> ToolResult:
    row = store.insert("interactions", args.record())
    kind = str(row["type"]).capitalize()
    text = f"{kind} interaction created successfully"
    if row.get("due_date"):
        text += f" (due {row['due_date']})"
    return ToolResult.ok(text, {"interactions": [row]})


def get_interaction(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    row = get_owned(store, "interactions", args.id, args.team_id)
    if row is None:
        return not_found("Interaction", args.id)
    return ToolResult.ok(f"Retrieved {row['type']} interaction", {"interactions": [row]})


def list_interactions(store: RecordStore, args: ListInteractionsArgs) -> ToolResult:
    query = tenant_filter(Query("interactions"), args.team_id)
    if args.contact_id:
        query.where("contact_id", "eq", args.contact_id)
    if args.deal_id:
        query.where("deal_id", "eq", args.deal_id)
    if args.type:
        query.where("type", "eq", args.type.value)
    query.order_by("created_at", descending=True)
    query.limit = args.limit
    rows = store.select(query)
    return ToolResult.ok(f"Found {len(rows)} interaction(s)", {"interactions": rows})


def update_interaction(store: RecordStore, args: UpdateInteractionArgs) -> ToolResult:
    if get_owned(store, "interactions", args.id, args.team_id) is None:
        return not_found("Interaction", args.id)
    row = store.update("interactions", args.id, args.record(exclude={"id", "team_id"}))
    return ToolResult.ok("Interaction updated successfully", {"interactions": [row]})


def delete_interaction(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    if get_owned(store, "interactions", args.id, args.team_id) is None:
        return not_found("Interaction", args.id)
    store.delete("interactions", args.id)
    return ToolResult.ok(f"Interaction {args.id} deleted successfully", {"deletedId": args.id})


TOOLS = [
    ToolSpec(
        "create_interaction",
        "Log a call, meeting, email or note, or create a task/reminder with an optional due_date "
        "(ISO-8601 local time).",
        CreateInteractionArgs,
        create_interaction,
    ),
    ToolSpec("get_interaction", "Get one interaction by id.", RecordIdArgs, get_interaction),
    ToolSpec(
        "list_interactions",
        "List interactions for the current team, newest first, filterable by contact, deal or type.",
        ListInteractionsArgs,
        list_interactions,
    ),
    ToolSpec("update_interaction", "Update an interaction by id.", UpdateInteractionArgs, update_interaction),
    ToolSpec("delete_interaction", "Delete an interaction by id.", RecordIdArgs, delete_interaction),
]
