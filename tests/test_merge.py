"""Tests for merging duplicate contacts and deals."""

from unittest.mock import patch

from agentcrm.dedup.merge import merge_contacts, merge_deals
from agentcrm.errors import RecordStoreError
from agentcrm.store.record_store import Query


def test_merge_contacts_fills_gaps_and_moves_interactions(store):
    target = store.insert("contacts", {"first_name": "John", "last_name": "Smith", "email": "john@acme.com"})
    source = store.insert(
        "contacts",
        {"first_name": "Johnny", "last_name": "Smith", "phone": "555-123-4567", "role": "CTO"},
    )
    store.insert("interactions", {"type": "call", "contact_id": source["id"], "summary": "Intro"})
    store.insert("interactions", {"type": "note", "contact_id": source["id"]})

    result = merge_contacts(store, source["id"], target["id"])

    assert result.success
    assert result.merged["first_name"] == "John"
    assert result.merged["phone"] == "555-123-4567"
    assert result.merged["role"] == "CTO"
    assert store.get("contacts", source["id"]) is None
    moved = store.select(Query("interactions").where("contact_id", "eq", target["id"]))
    assert len(moved) == 2


def test_merge_contacts_moves_email_held_by_source(store):
    target = store.insert("contacts", {"first_name": "John", "last_name": "Smith", "team_id": "t1"})
    source = store.insert(
        "contacts", {"first_name": "John", "last_name": "Smith", "email": "john@acme.com", "team_id": "t1"}
    )

    result = merge_contacts(store, source["id"], target["id"], team_id="t1")

    assert result.success
    assert result.merged["email"] == "john@acme.com"
    assert store.get("contacts", source["id"]) is None


def test_merge_contacts_missing_records(store):
    contact = store.insert("contacts", {"first_name": "John", "last_name": "Smith"})

    assert merge_contacts(store, "missing", contact["id"]).error == "Source contact not found"
    assert merge_contacts(store, contact["id"], "missing").error == "Target contact not found"
    assert not merge_contacts(store, contact["id"], contact["id"]).success


def test_merge_deals_adds_amounts(store):
    target = store.insert("deals", {"name": "Acme Expansion", "amount": 1000, "stage": "Proposal"})
    source = store.insert("deals", {"name": "Acme Expansion", "amount": 500, "close_date": "2026-12-01"})
    store.insert("interactions", {"type": "meeting", "deal_id": source["id"]})

    result = merge_deals(store, source["id"], target["id"])

    assert result.success
    assert result.merged["amount"] == 1500
    assert result.merged["stage"] == "Proposal"
    assert result.merged["close_date"] == "2026-12-01"
    assert store.get("deals", source["id"]) is None
    assert store.select(Query("interactions").where("deal_id", "eq", target["id"]))


def test_merge_deals_missing_source(store):
    target = store.insert("deals", {"name": "Acme"})

    result = merge_deals(store, "missing", target["id"])

    assert not result.success
    assert result.error == "Source deal not found"


def test_merge_contacts_hides_other_team_records(store):
    mine = store.insert("contacts", {"first_name": "John", "last_name": "Smith", "team_id": "t1"})
    theirs = store.insert("contacts", {"first_name": "John", "last_name": "Smith", "team_id": "t2"})

    assert merge_contacts(store, theirs["id"], mine["id"], team_id="t1").error == "Source contact not found"
    assert merge_contacts(store, mine["id"], theirs["id"], team_id="t1").error == "Target contact not found"
    assert store.get("contacts", theirs["id"]) is not None


def test_failed_target_update_keeps_source(store):
    target = store.insert("contacts", {"first_name": "John", "last_name": "Smith"})
    source = store.insert("contacts", {"first_name": "John", "last_name": "Smith", "email": "john@acme.com"})
    store.insert("interactions", {"type": "call", "contact_id": source["id"]})
    real_update = store.update

    def update(collection, record_id, changes):
        if record_id == target["id"]:
            raise RecordStoreError("disk full")
        return real_update(collection, record_id, changes)

    with patch.object(store, "update", side_effect=update):
        result = merge_contacts(store, source["id"], target["id"])

    assert not result.success
    assert result.error == "disk full"
    assert store.get("contacts", source["id"])["email"] == "john@acme.com"
    assert store.select(Query("interactions").where("contact_id", "eq", source["id"]))
