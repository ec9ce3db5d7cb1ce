"""Tag tools.

Tag names are unique per team. ``attach_tag`` is get-or-create: it bumps
``usage_count`` on an existing tag or creates the tag with a count of 1.
``merge_tags`` folds one tag's usage into another and removes it.
"""

import logging

from agentcrm.errors import UniqueViolationError
from agentcrm.models import ToolResult
from agentcrm.store.record_store import Filter, Query, RecordStore
from agentcrm.tools.args import (
    AttachTagArgs,
    CreateTagArgs,
    CreateTagsArgs,
    DeleteTagsByPrefixArgs,
    ListTagsArgs,
    MergeTagsArgs,
    RecordIdArgs,
)
from agentcrm.tools.base import ToolSpec, get_owned, not_found, tenant_filter

logger = logging.getLogger(__name__)


def _find_by_name(store: RecordStore, tag_name: str, team_id: str | None) -> dict | None:
    query = tenant_filter(Query("tags"), team_id).where("tag_name", "ieq", tag_name)
    query.limit = 1
    rows = store.select(query)
    return rows[0] if rows else None


def create_tag(store: RecordStore, args: CreateTagArgs) -> ToolResult:
    try:
        row = store.insert("tags", {**args.record(), "usage_count": 0})
    except UniqueViolationError:
        return ToolResult.ok(
            f'Tag "{args.tag_name}" already exists',
            {"tags": [], "alreadyExists": True},
        )
    return ToolResult.ok(f'Tag "{row["tag_name"]}" created successfully', {"tags": [row]})


def create_tags(store: RecordStore, args: CreateTagsArgs) -> ToolResult:
    created, skipped = [], []
    for spec in args.tags:
        if _find_by_name(store, spec.tag_name, args.team_id) is not None:
            skipped.append(spec.tag_name)
            continue
        record = {**spec.model_dump(), "team_id": args.team_id, "usage_count": 0}
        try:
            created.append(store.insert("tags", record))
        except UniqueViolationError:
            skipped.append(spec.tag_name)

    text = f"Created {len(created)} tag(s)"
    if skipped:
        text += f"; skipped existing: {', '.join(skipped)}"
    return ToolResult.ok(text, {"tags": created, "skipped": skipped})


def list_tags(store: RecordStore, args: ListTagsArgs) -> ToolResult:
    query = tenant_filter(Query("tags"), args.team_id)
    if args.entity_type:
        query.where("entity_type", "in", [args.entity_type, "all"])
    query.order_by("usage_count", descending=True).order_by("tag_name")
    rows = store.select(query)
    return ToolResult.ok(f"Found {len(rows)} tag(s)", {"tags": rows})


def delete_tag(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    if get_owned(store, "tags", args.id, args.team_id) is None:
        return not_found("Tag", args.id)
    store.delete("tags", args.id)
    return ToolResult.ok(f"Tag {args.id} deleted successfully", {"deletedId": args.id})


def delete_tags_by_prefix(store: RecordStore, args: DeleteTagsByPrefixArgs) -> ToolResult:
    scope = Filter("team_id", "eq", args.team_id) if args.team_id else Filter("team_id", "is_null")
    count = store.delete_where("tags", [scope, Filter("tag_name", "ilike", f"{args.prefix}%")])
    return ToolResult.ok(f'Deleted {count} tag(s) starting with "{args.prefix}"', {"deletedCount": count})


def attach_tag(store: RecordStore, args: AttachTagArgs) -> ToolResult:
    existing = _find_by_name(store, args.tag_name, args.team_id)
    if existing is None:
        try:
            row = store.insert("tags", {**args.record(), "usage_count": 1})
            return ToolResult.ok(f'Tag "{row["tag_name"]}" created', {"tags": [row]})
        except UniqueViolationError:
            # Created concurrently; fall through to the increment.
            logger.info("Tag %r appeared during attach, incrementing instead", args.tag_name)
            existing = _find_by_name(store, args.tag_name, args.team_id)
            if existing is None:
                raise

    row = store.update("tags", existing["id"], {"usage_count": int(existing.get("usage_count") or 0) + 1})
    return ToolResult.ok(f'Tag "{row["tag_name"]}" used {row["usage_count"]} time(s)', {"tags": [row]})


def merge_tags(store: RecordStore, args: MergeTagsArgs) -> ToolResult:
    source = get_owned(store, "tags", args.source_id, args.team_id)
    if source is None:
        return not_found("Tag", args.source_id)
    team_id = source.get("team_id") or args.team_id
    source_usage = int(source.get("usage_count") or 0)

    target = _find_by_name(store, args.target_name, team_id)
    if target is not None and target["id"] == source["id"]:
        return ToolResult.error("Error: Cannot merge a tag into itself")

    if target is None:
        merged = store.insert(
            "tags",
            {
                "tag_name": args.target_name,
                "color": source.get("color"),
                "entity_type": source.get("entity_type") or "all",
                "usage_count": source_usage,
                "team_id": team_id,
            },
        )
    else:
        merged = store.update(
            "tags", target["id"], {"usage_count": int(target.get("usage_count") or 0) + source_usage}
        )
    store.delete("tags", source["id"])
    return ToolResult.ok(
        f'Merged tag "{source["tag_name"]}" into "{merged["tag_name"]}"',
        {"tags": [merged], "mergedFrom": source["id"]},
    )


TOOLS = [
    ToolSpec("create_tag", "Create a tag. Color defaults to #A2B758, entity_type to all.", CreateTagArgs, create_tag),
    ToolSpec("create_tags", "Create several tags at once, skipping names that already exist.", CreateTagsArgs, create_tags),
    ToolSpec("list_tags", "List tags, optionally for one entity type (tags for 'all' are included).", ListTagsArgs, list_tags),
    ToolSpec("delete_tag", "Delete a tag by id.", RecordIdArgs, delete_tag),
    ToolSpec("delete_tags_by_prefix", "Delete every tag whose name starts with a prefix.", DeleteTagsByPrefixArgs, delete_tags_by_prefix),
    ToolSpec("attach_tag", "Use a tag by name, creating it if needed and counting the use.", AttachTagArgs, attach_tag),
    ToolSpec("merge_tags", "Merge a tag (source_id) into the tag named target_name.", MergeTagsArgs, merge_tags),
]
