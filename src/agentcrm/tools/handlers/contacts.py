"""Contact tools.

``create_contact`` here is the plain insert; duplicate screening happens in
the dispatcher before this handler is reached.
"""

from agentcrm.dedup.merge import merge_contacts as merge_contact_records
from agentcrm.models import ToolResult
from agentcrm.store.record_store import Query, RecordStore
from agentcrm.tools.args import (
    CreateContactArgs,
    ListContactsArgs,
    MergeRecordsArgs,
    RecordIdArgs,
    SearchContactsArgs,
    UpdateContactArgs,
)
from agentcrm.tools.base import ToolSpec, delete_links, get_owned, not_found, tenant_filter


def _full_name(row: dict) -> str:
    return f"{row.get('first_name', '')} {row.get('last_name', '')}".strip()


def create_contact(store: RecordStore, args: CreateContactArgs) -> ToolResult:
    row = store.insert("contacts", args.record())
    return ToolResult.ok(f"Contact {_full_name(row)} created successfully", {"contacts": [row]})


def get_contact(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    row = get_owned(store, "contacts", args.id, args.team_id)
    if row is None:
        return not_found("Contact", args.id)
    return ToolResult.ok(f"Retrieved contact: {_full_name(row)}", {"contacts": [row]})


def list_contacts(store: RecordStore, args: ListContactsArgs) -> ToolResult:
    query = tenant_filter(Query("contacts"), args.team_id)
    if args.account_id:
        query.where("account_id", "eq", args.account_id)
    query.order_by("created_at", descending=True)
    query.limit = args.limit
    rows = store.select(query)
    return ToolResult.ok(f"Found {len(rows)} contact(s)", {"contacts": rows})


def search_contacts(store: RecordStore, args: SearchContactsArgs) -> ToolResult:
    """Substring match on first name, last name or email."""
    pattern = f"%{args.query}%"
    found: dict[str, dict] = {}
    for column in ("first_name", "last_name", "email"):
        query = tenant_filter(Query("contacts"), args.team_id).where(column, "ilike", pattern)
        query.limit = args.limit
        for row in store.select(query):
            found.setdefault(row["id"], row)
    rows = list(found.values())[: args.limit]
    return ToolResult.ok(f'Found {len(rows)} contact(s) matching "{args.query}"', {"contacts": rows})


def update_contact(store: RecordStore, args: UpdateContactArgs) -> ToolResult:
    if get_owned(store, "contacts", args.id, args.team_id) is None:
        return not_found("Contact", args.id)
    row = store.update("contacts", args.id, args.record(exclude={"id", "team_id"}))
    return ToolResult.ok(f"Contact {_full_name(row)} updated successfully", {"contacts": [row]})


def delete_contact(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    if get_owned(store, "contacts", args.id, args.team_id) is None:
        return not_found("Contact", args.id)
    delete_links(store, "contact_id", args.id)
    store.delete("contacts", args.id)
    return ToolResult.ok(f"Contact {args.id} deleted successfully", {"deletedId": args.id})


def merge_contacts(store: RecordStore, args: MergeRecordsArgs) -> ToolResult:
    result = merge_contact_records(store, args.source_id, args.target_id, team_id=args.team_id)
    if not result.success:
        return ToolResult.error(f"Error: {result.error}")
    merged = result.merged or {}
    return ToolResult.ok(
        f"Merged contact {args.source_id} into {_full_name(merged)}",
        {"contacts": [merged], "mergedFrom": args.source_id},
    )


TOOLS = [
    ToolSpec(
        "create_contact",
        "Create a contact. Requires first_name and last_name. Screened for duplicates by email, phone and name.",
        CreateContactArgs,
        create_contact,
    ),
    ToolSpec("get_contact", "Get one contact by id.", RecordIdArgs, get_contact),
    ToolSpec("list_contacts", "List contacts for the current team, optionally for one account.", ListContactsArgs, list_contacts),
    ToolSpec("search_contacts", "Search contacts by name or email.", SearchContactsArgs, search_contacts),
    ToolSpec("update_contact", "Update a contact by id.", UpdateContactArgs, update_contact),
    ToolSpec("delete_contact", "Delete a contact by id along with its interactions.", RecordIdArgs, delete_contact),
    ToolSpec(
        "merge_contacts",
        "Merge a duplicate contact (source_id) into the contact to keep (target_id).",
        MergeRecordsArgs,
        merge_contacts,
    ),
]
