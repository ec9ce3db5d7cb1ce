"""Account tools."""

from agentcrm.models import ToolResult
from agentcrm.store.record_store import Filter, Query, RecordStore
from agentcrm.tools.args import (
    CreateAccountArgs,
    ListAccountsArgs,
    RecordIdArgs,
    UpdateAccountArgs,
)
from agentcrm.tools.base import ToolSpec, get_owned, not_found, plural, tenant_filter


def create_account(store: RecordStore, args: CreateAccountArgs) -> ToolResult:
    row = store.insert("accounts", args.record())
    return ToolResult.ok(f'Account "{row["name"]}" created successfully', {"accounts": [row]})


def get_account(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    row = get_owned(store, "accounts", args.id, args.team_id)
    if row is None:
        return not_found("Account", args.id)
    return ToolResult.ok(f"Retrieved account: {row['name']}", {"accounts": [row]})


def list_accounts(store: RecordStore, args: ListAccountsArgs) -> ToolResult:
    query = tenant_filter(Query("accounts"), args.team_id)
    if args.industry:
        query.where("industry", "ilike", f"%{args.industry}%")
    query.order_by("created_at", descending=True)
    query.limit = args.limit
    rows = store.select(query)
    return ToolResult.ok(f"Found {len(rows)} account(s)", {"accounts": rows})


def update_account(store: RecordStore, args: UpdateAccountArgs) -> ToolResult:
    if get_owned(store, "accounts", args.id, args.team_id) is None:
        return not_found("Account", args.id)
    row = store.update("accounts", args.id, args.record(exclude={"id", "team_id"}))
    return ToolResult.ok(f'Account "{row["name"]}" updated successfully', {"accounts": [row]})


def delete_account(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    """Delete an account with its contacts, deals and their interactions."""
    if get_owned(store, "accounts", args.id, args.team_id) is None:
        return not_found("Account", args.id)

    contact_ids = [r["id"] for r in store.select(Query("contacts").where("account_id", "eq", args.id))]
    deal_ids = [r["id"] for r in store.select(Query("deals").where("account_id", "eq", args.id))]
    if contact_ids:
        store.delete_where("interactions", [Filter("contact_id", "in", contact_ids)])
        store.delete_where("contacts", [Filter("account_id", "eq", args.id)])
    if deal_ids:
        store.delete_where("interactions", [Filter("deal_id", "in", deal_ids)])
        store.delete_where("deals", [Filter("account_id", "eq", args.id)])
    store.delete("accounts", args.id)

    return ToolResult.ok(
        f"Account deleted successfully (removed {plural(len(contact_ids), 'contact')} "
        f"and {plural(len(deal_ids), 'deal')})",
        {"deletedId": args.id},
    )


def get_account_summary(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    account = get_owned(store, "accounts", args.id, args.team_id)
    if account is None:
        return not_found("Account", args.id)

    contacts = store.select(Query("contacts").where("account_id", "eq", args.id).order_by("last_name"))
    deals = store.select(Query("deals").where("account_id", "eq", args.id).order_by("created_at", descending=True))

    interactions: dict[str, dict] = {}
    links = (("contact_id", [c["id"] for c in contacts]), ("deal_id", [d["id"] for d in deals]))
    for column, ids in links:
        if not ids:
            continue
        query = Query("interactions").where(column, "in", ids).order_by("created_at", descending=True)
        for row in store.select(query):
            interactions[row["id"]] = row
    recent = sorted(interactions.values(), key=lambda r: r.get("created_at") or "", reverse=True)[:20]

    open_deals = [d for d in deals if d.get("status") == "open"]
    stats = {
        "totalContacts": len(contacts),
        "totalDeals": len(deals),
        "openDeals": len(open_deals),
        "wonDeals": sum(1 for d in deals if d.get("status") == "won"),
        "totalValue": sum(float(d.get("amount") or 0) for d in deals),
        "openValue": sum(float(d.get("amount") or 0) for d in open_deals),
        "totalInteractions": len(interactions),
    }
    text = (
        f"Account summary for {account['name']}: {plural(len(contacts), 'contact')}, "
        f"{plural(len(deals), 'deal')} ({len(open_deals)} open)"
    )
    return ToolResult.ok(
        text,
        {
            "accounts": [account],
            "contacts": contacts,
            "deals": deals,
            "interactions": recent,
            "stats": stats,
        },
    )


TOOLS = [
    ToolSpec("create_account", "Create a new account (company). Requires a name.", CreateAccountArgs, create_account),
    ToolSpec("get_account", "Get one account by id.", RecordIdArgs, get_account),
    ToolSpec("list_accounts", "List accounts for the current team, newest first.", ListAccountsArgs, list_accounts),
    ToolSpec("update_account", "Update an account by id.", UpdateAccountArgs, update_account),
    ToolSpec(
        "delete_account",
        "Delete an account by id, including its contacts, deals and their interactions.",
        RecordIdArgs,
        delete_account,
    ),
    ToolSpec(
        "get_account_summary",
        "Get an account with its contacts, deals, recent interactions and pipeline stats.",
        RecordIdArgs,
        get_account_summary,
    ),
]
