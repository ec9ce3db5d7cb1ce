"""Tool dispatcher with tenant injection and duplicate-aware creation.

Every tool call goes through ``ToolDispatcher.dispatch``:

1. look the tool up in the closed catalog
2. inject the caller's team into ``team_id`` for tenant-scoped tools
3. validate the arguments against the tool's pydantic model
4. for ``create_contact`` / ``create_deal``, screen for duplicates first and
   turn a store uniqueness violation into the same duplicate response
5. run the handler and wrap store errors in the ``ToolResult`` envelope
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from agentcrm.dedup.detector import DuplicateDetector
from agentcrm.errors import RecordStoreError, UniqueViolationError
from agentcrm.models import DeduplicationResult, SuggestedAction, ToolResult
from agentcrm.store.record_store import RecordStore
from agentcrm.tenancy import CallerContext, TenantResolution, TenantResolver
from agentcrm.tools.args import format_validation_error
from agentcrm.tools.base import ToolSpec
from agentcrm.tools.catalog import CATALOG

logger = logging.getLogger(__name__)

# List-style reads that leak across tenants unless scoped.
TENANT_REQUIRED = frozenset(
    {
        "list_accounts",
        "list_contacts",
        "list_deals",
        "list_interactions",
        "list_pipelines",
        "list_tags",
        "search_contacts",
        "search_crm",
    }
)

# Tools whose team_id is filled from the caller's tenant when not given.
# By-id tools use it to treat another team's record as not found.
TENANT_SCOPED = TENANT_REQUIRED | frozenset(
    {
        "create_account",
        "get_account",
        "update_account",
        "delete_account",
        "get_account_summary",
        "create_contact",
        "get_contact",
        "update_contact",
        "delete_contact",
        "merge_contacts",
        "create_deal",
        "get_deal",
        "update_deal",
        "delete_deal",
        "move_deal_stage",
        "close_deal",
        "merge_deals",
        "create_pipeline",
        "get_pipeline",
        "update_pipeline",
        "delete_pipeline",
        "create_interaction",
        "get_interaction",
        "update_interaction",
        "delete_interaction",
        "create_tag",
        "create_tags",
        "delete_tag",
        "delete_tags_by_prefix",
        "attach_tag",
        "merge_tags",
    }
)

DUPLICATE_AWARE = {"create_contact": "contact", "create_deal": "deal"}


def _describe_existing(entity: str, row: Mapping[str, Any]) -> str:
    if entity == "contact":
        return f"{row.get('first_name', '')} {row.get('last_name', '')}".strip()
    return str(row.get("name", ""))


def duplicate_error(entity: str, result: DeduplicationResult) -> ToolResult:
    """Blocked-create response carrying the matches for a merge UI."""
    top = result.top_match
    lines = [f"⚠️ {result.message}"]
    if top is not None:
        lines.append(f"Existing {entity}: {_describe_existing(entity, top.data)} (ID: {top.id})")
    retry_hint = "a different email/phone" if entity == "contact" else "a different name"
    lines.append(
        f"To proceed anyway, use the update_{entity} tool with the existing {entity} ID, "
        f"or create with {retry_hint}."
    )
    return ToolResult.error(
        "\n\n".join(lines),
        {
            "duplicateMatches": [m.to_payload() for m in result.matches],
            "suggestedAction": result.suggested_action.value,
        },
    )


class ToolDispatcher:
    """Routes validated tool calls to the record store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        tenants: TenantResolver | None = None,
        detector: DuplicateDetector | None = None,
        catalog: Mapping[str, ToolSpec] | None = None,
    ):
        self.store = store
        self.tenants = tenants or TenantResolver(store)
        self.detector = detector or DuplicateDetector(store)
        self.catalog = catalog if catalog is not None else CATALOG

    @property
    def tool_names(self) -> list[str]:
        return list(self.catalog)

    def inject_tenant(
        self, tool_name: str, args: dict[str, Any], caller: CallerContext
    ) -> TenantResolution | None:
        """Fill ``args['team_id']`` for tenant-scoped tools. Returns the resolution used."""
        if tool_name not in TENANT_SCOPED:
            return None
        if args.get("team_id"):
            return TenantResolution.scoped(str(args["team_id"]), "argument")

        resolution = self.tenants.resolve(caller)
        if resolution.is_scoped:
            args["team_id"] = resolution.team_id
        elif tool_name in TENANT_REQUIRED:
            logger.warning(
                "No tenant for %s (user=%s): %s; serving unscoped rows only",
                tool_name,
                caller.user_id,
                resolution.reason,
            )
        return resolution

    def dispatch(
        self,
        tool_name: str,
        args: Mapping[str, Any] | None,
        caller: CallerContext | None = None,
    ) -> ToolResult:
        caller = caller or CallerContext.anonymous()
        spec = self.catalog.get(tool_name)
        if spec is None:
            return ToolResult.error(f"Unknown tool: {tool_name}")

        raw = dict(args or {})
        self.inject_tenant(tool_name, raw, caller)

        try:
            parsed = spec.args_model.model_validate(raw)
        except ValidationError as e:
            logger.info("Rejected %s arguments: %s", tool_name, e.error_count())
            return ToolResult.error(format_validation_error(tool_name, e))

        logger.info("Dispatching %s (user=%s, team=%s)", tool_name, caller.user_id, raw.get("team_id"))
        if tool_name in DUPLICATE_AWARE:
            return self._create_with_duplicate_check(spec, parsed, DUPLICATE_AWARE[tool_name])
        return self._run(spec, parsed)

    def _run(self, spec: ToolSpec, parsed: BaseModel) -> ToolResult:
        try:
            return spec.handler(self.store, parsed)
        except RecordStoreError as e:
            logger.warning("%s failed: %s", spec.name, e)
            return ToolResult.error(f"Error: {e}")

    def _detect(self, entity: str) -> Callable[[Mapping[str, Any]], DeduplicationResult]:
        if entity == "contact":
            return self.detector.detect_contact_duplicates
        return self.detector.detect_deal_duplicates

    def _create_with_duplicate_check(self, spec: ToolSpec, parsed: BaseModel, entity: str) -> ToolResult:
        detect = self._detect(entity)
        candidate = parsed.model_dump(mode="json", exclude_none=True)
        screening = detect(candidate)

        if screening.suggested_action == SuggestedAction.MERGE:
            logger.info("Blocked %s: %s", spec.name, screening.message)
            return duplicate_error(entity, screening)

        try:
            result = spec.handler(self.store, parsed)
        except UniqueViolationError as e:
            # Lost a race with a concurrent create; report it like a pre-check hit.
            logger.warning("%s hit a uniqueness violation, re-running duplicate check: %s", spec.name, e)
            recheck = detect(candidate)
            if not recheck.matches:
                recheck = screening
            if not recheck.matches:
                recheck = DeduplicationResult(
                    is_duplicate=True,
                    suggested_action=SuggestedAction.MERGE,
                    message=f"Strong duplicate detected: {e}",
                )
            return duplicate_error(entity, recheck)
        except RecordStoreError as e:
            logger.warning("%s failed: %s", spec.name, e)
            return ToolResult.error(f"Error: {e}")

        if screening.suggested_action == SuggestedAction.UPDATE and not result.is_error:
            return result.with_prefix(f"⚠️ {screening.message}")
        return result
