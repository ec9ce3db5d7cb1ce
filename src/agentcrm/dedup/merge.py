"""Merge a duplicate contact or deal into the record that survives.

The target is written before the source is removed. A unique value the
target takes over from the source (a contact's email) is released on the
source first and put back if the target update fails.
"""

import logging
from typing import Any

from agentcrm.errors import RecordStoreError
from agentcrm.models import MergeResult
from agentcrm.store.record_store import Filter, RecordStore

logger = logging.getLogger(__name__)

CONTACT_MERGE_FIELDS = ("first_name", "last_name", "account_id", "email", "phone", "role", "assigned_to")
DEAL_MERGE_FIELDS = ("name", "account_id", "pipeline_id", "stage", "status", "close_date", "assigned_to")

UNIQUE_FIELDS = {"contacts": ("email",)}


def _fill_gaps(target: dict[str, Any], source: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    """Fields the target lacks, taken from the source."""
    changes = {}
    for name in fields:
        if target.get(name) in (None, "") and source.get(name) not in (None, ""):
            changes[name] = source[name]
    return changes


def _owned(store: RecordStore, collection: str, record_id: str, team_id: str | None) -> dict[str, Any] | None:
    row = store.get(collection, record_id)
    if row is None or (row.get("team_id") and row["team_id"] != team_id):
        return None
    return row


def _merge(
    store: RecordStore,
    collection: str,
    label: str,
    link_column: str,
    source_id: str,
    target_id: str,
    team_id: str | None,
    changes_fn,
) -> MergeResult:
    if source_id == target_id:
        return MergeResult(success=False, error=f"Cannot merge a {label} into itself")
    try:
        source = _owned(store, collection, source_id, team_id)
        if source is None:
            return MergeResult(success=False, error=f"Source {label} not found")
        target = _owned(store, collection, target_id, team_id)
        if target is None:
            return MergeResult(success=False, error=f"Target {label} not found")

        changes = changes_fn(target, source)
        released = {name: source[name] for name in UNIQUE_FIELDS.get(collection, ()) if name in changes}
        if released:
            store.update(collection, source_id, {name: None for name in released})
        try:
            merged = store.update(collection, target_id, changes)
        except RecordStoreError:
            if released:
                store.update(collection, source_id, released)
            raise

        moved = store.update_where(
            "interactions", [Filter(link_column, "eq", source_id)], {link_column: target_id}
        )
        store.delete(collection, source_id)
    except RecordStoreError as e:
        logger.error("Failed to merge %s %s into %s: %s", label, source_id, target_id, e)
        return MergeResult(success=False, error=str(e))

    logger.info("Merged %s %s into %s (%d interactions moved)", label, source_id, target_id, moved)
    return MergeResult(success=True, merged=merged)


def merge_contacts(
    store: RecordStore, source_id: str, target_id: str, *, team_id: str | None = None
) -> MergeResult:
    """Fold ``source_id`` into ``target_id``; target values win where both are set.

    Both records must be visible to ``team_id``; another team's contact is
    reported as not found.
    """
    return _merge(
        store,
        "contacts",
        "contact",
        "contact_id",
        source_id,
        target_id,
        team_id,
        lambda target, source: _fill_gaps(target, source, CONTACT_MERGE_FIELDS),
    )


def _deal_changes(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    changes = _fill_gaps(target, source, DEAL_MERGE_FIELDS)
    if target.get("amount") is not None and source.get("amount") is not None:
        changes["amount"] = float(target["amount"]) + float(source["amount"])
    elif source.get("amount") is not None:
        changes["amount"] = source["amount"]
    return changes


def merge_deals(
    store: RecordStore, source_id: str, target_id: str, *, team_id: str | None = None
) -> MergeResult:
    """Fold ``source_id`` into ``target_id``; amounts are summed."""
    return _merge(store, "deals", "deal", "deal_id", source_id, target_id, team_id, _deal_changes)
