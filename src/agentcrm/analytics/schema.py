"""Analytics tables, legacy column aliases and filter clean-up."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

ANALYTICS_TABLES: dict[str, tuple[str, ...]] = {
    "deals": (
        "id", "name", "amount", "stage", "status", "close_date", "account_id",
        "pipeline_id", "assigned_to", "team_id", "created_at", "updated_at",
    ),
    "contacts": (
        "id", "first_name", "last_name", "email", "phone", "role", "account_id",
        "assigned_to", "team_id", "created_at", "updated_at",
    ),
    "accounts": (
        "id", "name", "industry", "website", "assigned_to", "team_id", "created_at", "updated_at",
    ),
    "interactions": (
        "id", "type", "summary", "sentiment", "due_date", "contact_id", "deal_id",
        "assigned_to", "team_id", "created_at",
    ),
}

NUMERIC_COLUMNS: dict[str, frozenset[str]] = {
    "deals": frozenset({"amount"}),
}

ANALYTICS_SCHEMA = """Tables (name: columns):
- deals: id, name, amount (number), stage (text, e.g. Lead, Discovery, Proposal, Negotiation), status (open | won | lost), close_date, account_id, assigned_to, created_at
- contacts: id, first_name, last_name, email, phone, role, account_id, assigned_to, created_at
- accounts: id, name, industry, website, assigned_to, created_at
- interactions: id, type (call | meeting | email | note), summary, sentiment, due_date, contact_id, deal_id, assigned_to, created_at"""

# Names older clients and prompts still use.
COLUMN_ALIASES: dict[str, dict[str, str]] = {
    "deals": {
        "opportunity_name": "name",
        "opportunity_value": "amount",
        "value": "amount",
        "stage_id": "stage",
        "actual_close_date": "close_date",
        "opportunity_state": "status",
        "closed": "status",
    },
    "interactions": {
        "opportunity_id": "deal_id",
    },
}

VALID_DEAL_STATUSES = ("open", "won", "lost")

OPERATOR_MAP = {
    "=": "eq",
    "!=": "neq",
    ">": "gt",
    "<": "lt",
    ">=": "gte",
    "<=": "lte",
    "like": "like",
    "ilike": "ilike",
}


def clean_column(column: str | None) -> str:
    return (column or "").strip().strip(".").strip()


def map_column(table: str, column: str | None) -> str | None:
    """Apply legacy aliases; return None for columns the table doesn't have."""
    name = clean_column(column)
    if not name:
        return None
    name = COLUMN_ALIASES.get(table, {}).get(name, name)
    if name not in ANALYTICS_TABLES.get(table, ()):
        logger.info("Ignoring unknown column %r on %s", column, table)
        return None
    return name


def normalize_filter(table: str, column: str | None, operator: str | None, value: Any) -> tuple[str, str, Any] | None:
    """Return ``(column, store_op, value)`` or None when the filter should be skipped."""
    if column is None or operator is None or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    op = OPERATOR_MAP.get(str(operator).strip().lower())
    if op is None:
        logger.info("Skipping filter with unsupported operator %r", operator)
        return None
    mapped = map_column(table, column)
    if mapped is None:
        return None

    if table == "deals" and mapped == "status":
        status = str(value).lower()
        if status == "closed":
            status = "won"
        if status not in VALID_DEAL_STATUSES:
            logger.info("Skipping deal status filter with invalid value %r", value)
            return None
        value = status
    return mapped, op, value
