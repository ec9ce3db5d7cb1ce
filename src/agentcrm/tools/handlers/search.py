"""Cross-entity search."""

from agentcrm.models import ToolResult
from agentcrm.store.record_store import Query, RecordStore
from agentcrm.tools.args import SearchCrmArgs
from agentcrm.tools.base import ToolSpec, tenant_filter

SEARCH_FIELDS = {
    "accounts": ("name", "industry"),
    "contacts": ("first_name", "last_name", "email"),
    "deals": ("name",),
}


def search_crm(store: RecordStore, args: SearchCrmArgs) -> ToolResult:
    pattern = f"%{args.query}%"
    structured: dict[str, list[dict]] = {}
    for collection, columns in SEARCH_FIELDS.items():
        found: dict[str, dict] = {}
        for column in columns:
            query = tenant_filter(Query(collection), args.team_id).where(column, "ilike", pattern)
            query.limit = args.limit
            for row in store.select(query):
                found.setdefault(row["id"], row)
        structured[collection] = list(found.values())[: args.limit]

    total = sum(len(rows) for rows in structured.values())
    text = (
        f'Found {total} result(s) for "{args.query}": '
        f"{len(structured['accounts'])} account(s), {len(structured['contacts'])} contact(s), "
        f"{len(structured['deals'])} deal(s)"
    )
    return ToolResult.ok(text, {**structured, "total": total})


TOOLS = [
    ToolSpec(
        "search_crm",
        "Search accounts, contacts and deals by name, industry or email.",
        SearchCrmArgs,
        search_crm,
    ),
]
