"""Shared test fixtures for the agentcrm test suite.

* ``store``          -- empty DuckDB record store in a temp directory
* ``seeded_store``   -- two teams with accounts, contacts and deals
* ``dispatcher``     -- ToolDispatcher over ``seeded_store``
* ``team_a_caller``  -- caller whose current team resolves to ``team-a``

Seeded deals in ``team-a`` match the "Show deals by stage" scenario:
two in Discovery (1000, 2000) and one in Proposal (5000).
"""

from __future__ import annotations

from pathlib import Path

import pytest

from agentcrm.dispatch.dispatcher import ToolDispatcher
from agentcrm.store.duckdb_store import DuckDBRecordStore
from agentcrm.tenancy import CallerContext

TEAM_A = "team-a"
TEAM_B = "team-b"
USER_A = "user-a"


def _make_store(tmp_path: Path) -> DuckDBRecordStore:
    return DuckDBRecordStore(tmp_path / "crm.duckdb")


def seed(store: DuckDBRecordStore) -> dict[str, str]:
    """Insert a small, precisely counted data set. Returns ids by label."""
    ids: dict[str, str] = {}

    ids["acme"] = store.insert(
        "accounts", {"name": "Acme Corp", "industry": "Manufacturing", "team_id": TEAM_A}
    )["id"]
    ids["globex"] = store.insert(
        "accounts", {"name": "Globex", "industry": "Software", "team_id": TEAM_A}
    )["id"]
    ids["initech"] = store.insert("accounts", {"name": "Initech", "team_id": TEAM_A})["id"]
    ids["umbrella"] = store.insert(
        "accounts", {"name": "Umbrella", "industry": "Pharma", "team_id": TEAM_B}
    )["id"]

    ids["john"] = store.insert(
        "contacts",
        {
            "first_name": "John",
            "last_name": "Smith",
            "email": "john@acme.com",
            "phone": "(555) 123-4567",
            "account_id": ids["acme"],
            "team_id": TEAM_A,
        },
    )["id"]
    ids["jane"] = store.insert(
        "contacts",
        {
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@globex.com",
            "account_id": ids["globex"],
            "team_id": TEAM_A,
        },
    )["id"]
    ids["bob"] = store.insert(
        "contacts",
        {"first_name": "Bob", "last_name": "Wilson", "email": "bob@umbrella.com", "team_id": TEAM_B},
    )["id"]

    ids["deal_d1"] = store.insert(
        "deals",
        {"name": "Acme Expansion", "amount": 1000, "stage": "Discovery", "account_id": ids["acme"], "team_id": TEAM_A},
    )["id"]
    ids["deal_d2"] = store.insert(
        "deals",
        {"name": "Globex Pilot", "amount": 2000, "stage": "Discovery", "account_id": ids["globex"], "team_id": TEAM_A},
    )["id"]
    ids["deal_p1"] = store.insert(
        "deals",
        {"name": "Initech Renewal", "amount": 5000, "stage": "Proposal", "account_id": ids["initech"], "team_id": TEAM_A},
    )["id"]
    ids["deal_b"] = store.insert(
        "deals",
        {"name": "Umbrella Trial", "amount": 9000, "stage": "Discovery", "team_id": TEAM_B},
    )["id"]

    store.insert("team_memberships", {"team_id": TEAM_A, "user_id": USER_A, "role": "owner"})
    return ids


@pytest.fixture
def store(tmp_path):
    """Empty record store."""
    return _make_store(tmp_path)


@pytest.fixture
def seeded(tmp_path):
    """``(store, ids)`` for the seeded data set."""
    store = _make_store(tmp_path)
    return store, seed(store)


@pytest.fixture
def seeded_store(seeded):
    return seeded[0]


@pytest.fixture
def ids(seeded):
    return seeded[1]


@pytest.fixture
def dispatcher(seeded_store):
    return ToolDispatcher(seeded_store)


@pytest.fixture
def team_a_caller():
    return CallerContext(user_id=USER_A)
