"""Deal tools."""

from datetime import date

from agentcrm.dedup.merge import merge_deals as merge_deal_records
from agentcrm.models import ToolResult
from agentcrm.store.record_store import Query, RecordStore
from agentcrm.tools.args import (
    CloseDealArgs,
    CreateDealArgs,
    ListDealsArgs,
    MergeRecordsArgs,
    MoveDealStageArgs,
    RecordIdArgs,
    UpdateDealArgs,
)
from agentcrm.tools.base import ToolSpec, delete_links, get_owned, not_found, tenant_filter


def _describe(row: dict) -> str:
    amount = row.get("amount")
    if amount is None:
        return f'"{row["name"]}" ({row.get("stage")})'
    return f'"{row["name"]}" (${float(amount):,.0f}, {row.get("stage")})'


def create_deal(store: RecordStore, args: CreateDealArgs) -> ToolResult:
    row = store.insert("deals", args.record())
    return ToolResult.ok(f"Deal {_describe(row)} created successfully", {"deals": [row]})


def get_deal(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    row = get_owned(store, "deals", args.id, args.team_id)
    if row is None:
        return not_found("Deal", args.id)
    return ToolResult.ok(f"Retrieved deal: {_describe(row)}", {"deals": [row]})


def list_deals(store: RecordStore, args: ListDealsArgs) -> ToolResult:
    query = tenant_filter(Query("deals"), args.team_id)
    if args.account_id:
        query.where("account_id", "eq", args.account_id)
    if args.stage:
        query.where("stage", "ieq", args.stage)
    if args.status:
        query.where("status", "eq", args.status.value)
    query.order_by("created_at", descending=True)
    query.limit = args.limit
    rows = store.select(query)
    return ToolResult.ok(f"Found {len(rows)} deal(s)", {"deals": rows})


def update_deal(store: RecordStore, args: UpdateDealArgs) -> ToolResult:
    if get_owned(store, "deals", args.id, args.team_id) is None:
        return not_found("Deal", args.id)
    row = store.update("deals", args.id, args.record(exclude={"id", "team_id"}))
    return ToolResult.ok(f"Deal {_describe(row)} updated successfully", {"deals": [row]})


def move_deal_stage(store: RecordStore, args: MoveDealStageArgs) -> ToolResult:
    if get_owned(store, "deals", args.id, args.team_id) is None:
        return not_found("Deal", args.id)
    row = store.update("deals", args.id, {"stage": args.stage})
    return ToolResult.ok(f"Deal moved to stage {args.stage}", {"deals": [row]})


def close_deal(store: RecordStore, args: CloseDealArgs) -> ToolResult:
    if get_owned(store, "deals", args.id, args.team_id) is None:
        return not_found("Deal", args.id)
    changes = {"status": args.status, "close_date": args.close_date or date.today().isoformat()}
    row = store.update("deals", args.id, changes)
    return ToolResult.ok(f"Deal {_describe(row)} closed as {args.status}", {"deals": [row]})


def delete_deal(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    if get_owned(store, "deals", args.id, args.team_id) is None:
        return not_found("Deal", args.id)
    delete_links(store, "deal_id", args.id)
    store.delete("deals", args.id)
    return ToolResult.ok(f"Deal {args.id} deleted successfully", {"deletedId": args.id})


def merge_deals(store: RecordStore, args: MergeRecordsArgs) -> ToolResult:
    result = merge_deal_records(store, args.source_id, args.target_id, team_id=args.team_id)
    if not result.success:
        return ToolResult.error(f"Error: {result.error}")
    merged = result.merged or {}
    return ToolResult.ok(
        f"Merged deal {args.source_id} into {_describe(merged)}",
        {"deals": [merged], "mergedFrom": args.source_id},
    )


TOOLS = [
    ToolSpec(
        "create_deal",
        "Create a deal (opportunity). Requires a name; stage defaults to Lead and status to open.",
        CreateDealArgs,
        create_deal,
    ),
    ToolSpec("get_deal", "Get one deal by id.", RecordIdArgs, get_deal),
    ToolSpec("list_deals", "List deals for the current team, filterable by account, stage or status.", ListDealsArgs, list_deals),
    ToolSpec("update_deal", "Update a deal by id.", UpdateDealArgs, update_deal),
    ToolSpec("move_deal_stage", "Move a deal to another pipeline stage.", MoveDealStageArgs, move_deal_stage),
    ToolSpec("close_deal", "Close a deal as won or lost.", CloseDealArgs, close_deal),
    ToolSpec("delete_deal", "Delete a deal by id along with its interactions.", RecordIdArgs, delete_deal),
    ToolSpec(
        "merge_deals",
        "Merge a duplicate deal (source_id) into the deal to keep (target_id); amounts are added.",
        MergeRecordsArgs,
        merge_deals,
    ),
]
