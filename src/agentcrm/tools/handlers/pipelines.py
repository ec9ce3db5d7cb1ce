"""Pipeline tools.

A pipeline is a named, ordered list of deal stages. Each stage is mirrored
as a ``"<pipeline> - <stage>"`` tag with ``entity_type = "pipeline"`` so the
stages can be filtered like any other tag; the tags follow renames and are
removed with the pipeline.
"""

import json
import logging
from typing import Any

from agentcrm.models import ToolResult
from agentcrm.store.record_store import Filter, Query, RecordStore
from agentcrm.tools.args import CreatePipelineArgs, ListPipelinesArgs, RecordIdArgs, UpdatePipelineArgs
from agentcrm.tools.base import ToolSpec, get_owned, not_found, tenant_filter

logger = logging.getLogger(__name__)

STAGE_COLORS = (
    "#3B82F6", "#8B5CF6", "#06B6D4", "#10B981", "#F59E0B",
    "#F97316", "#F43F5E", "#EC4899", "#6366F1", "#14B8A6",
)


def _decode(row: dict[str, Any]) -> dict[str, Any]:
    stages = row.get("stages")
    if isinstance(stages, str):
        try:
            stages = json.loads(stages)
        except ValueError:
            stages = [stages]
    return {**row, "stages": stages or []}


def _stage_tag_prefix(pipeline_name: str) -> str:
    return f"{pipeline_name} - "


def _sync_stage_tags(store: RecordStore, pipeline_name: str, stages: list[str], team_id: str | None) -> None:
    for index, stage in enumerate(stages):
        tag_name = f"{_stage_tag_prefix(pipeline_name)}{stage}"
        color = STAGE_COLORS[index % len(STAGE_COLORS)]
        query = tenant_filter(Query("tags"), team_id).where("tag_name", "ieq", tag_name)
        existing = store.select(query)
        if existing:
            store.update("tags", existing[0]["id"], {"color": color})
        else:
            store.insert(
                "tags",
                {"tag_name": tag_name, "color": color, "entity_type": "pipeline", "usage_count": 0, "team_id": team_id},
            )


def _drop_stage_tags(store: RecordStore, pipeline_name: str, team_id: str | None) -> int:
    prefix = _stage_tag_prefix(pipeline_name)
    query = tenant_filter(Query("tags"), team_id).where("entity_type", "eq", "pipeline")
    ids = [r["id"] for r in store.select(query) if str(r.get("tag_name") or "").startswith(prefix)]
    if not ids:
        return 0
    return store.delete_where("tags", [Filter("id", "in", ids)])


def create_pipeline(store: RecordStore, args: CreatePipelineArgs) -> ToolResult:
    row = store.insert("pipelines", args.record())
    _sync_stage_tags(store, args.name, args.stages, args.team_id)
    return ToolResult.ok(
        f'Pipeline "{row["name"]}" created successfully with {len(args.stages)} stage tags',
        {"pipelines": [_decode(row)]},
    )


def get_pipeline(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    row = get_owned(store, "pipelines", args.id, args.team_id)
    if row is None:
        return not_found("Pipeline", args.id)
    return ToolResult.ok(f"Retrieved pipeline: {row['name']}", {"pipelines": [_decode(row)]})


def list_pipelines(store: RecordStore, args: ListPipelinesArgs) -> ToolResult:
    rows = store.select(tenant_filter(Query("pipelines"), args.team_id).order_by("name"))
    return ToolResult.ok(f"Found {len(rows)} pipeline(s)", {"pipelines": [_decode(r) for r in rows]})


def update_pipeline(store: RecordStore, args: UpdatePipelineArgs) -> ToolResult:
    old = get_owned(store, "pipelines", args.id, args.team_id)
    if old is None:
        return not_found("Pipeline", args.id)
    row = _decode(store.update("pipelines", args.id, args.record(exclude={"id", "team_id"})))

    if args.name or args.stages:
        team_id = old.get("team_id")
        _drop_stage_tags(store, old["name"], team_id)
        _sync_stage_tags(store, row["name"], row["stages"], team_id)
    return ToolResult.ok(f'Pipeline "{row["name"]}" updated successfully', {"pipelines": [row]})


def delete_pipeline(store: RecordStore, args: RecordIdArgs) -> ToolResult:
    """Delete a pipeline with its deals, their interactions and its stage tags."""
    pipeline = get_owned(store, "pipelines", args.id, args.team_id)
    if pipeline is None:
        return not_found("Pipeline", args.id)

    deal_ids = [r["id"] for r in store.select(Query("deals").where("pipeline_id", "eq", args.id))]
    if deal_ids:
        store.delete_where("interactions", [Filter("deal_id", "in", deal_ids)])
        store.delete_where("deals", [Filter("pipeline_id", "eq", args.id)])
    store.delete("pipelines", args.id)
    tags = _drop_stage_tags(store, pipeline["name"], pipeline.get("team_id"))
    logger.info("Deleted pipeline %s with %d deal(s) and %d stage tag(s)", args.id, len(deal_ids), tags)

    remaining = store.select(tenant_filter(Query("pipelines"), args.team_id).order_by("name"))
    return ToolResult.ok("Pipeline deleted successfully", {"pipelines": [_decode(r) for r in remaining]})


TOOLS = [
    ToolSpec(
        "create_pipeline",
        'Create a sales pipeline with an ordered list of stages, e.g. ["Lead", "Discovery", "Proposal", "Closed"].',
        CreatePipelineArgs,
        create_pipeline,
    ),
    ToolSpec("get_pipeline", "Get one pipeline by id.", RecordIdArgs, get_pipeline),
    ToolSpec("list_pipelines", "List the current team's pipelines.", ListPipelinesArgs, list_pipelines),
    ToolSpec("update_pipeline", "Rename a pipeline or replace its stages.", UpdatePipelineArgs, update_pipeline),
    ToolSpec(
        "delete_pipeline",
        "Delete a pipeline by id, including its deals and their interactions.",
        RecordIdArgs,
        delete_pipeline,
    ),
]
