"""Chart data for chat replies, picked by keyword from the user's message."""

from collections.abc import Mapping
from typing import Any

from agentcrm.analytics.bucketing import bucket_rows

CHART_KEYWORDS = ("revenue", "chart", "graph", "by stage", "analytics", "breakdown", "distribution")


def wants_chart(message: str) -> bool:
    lowered = (message or "").lower()
    return any(keyword in lowered for keyword in CHART_KEYWORDS)


def _rows(structured: Mapping[str, Any] | None, key: str) -> list[dict[str, Any]]:
    if not structured:
        return []
    rows = structured.get(key)
    return [row for row in rows if isinstance(row, Mapping)] if isinstance(rows, list) else []


def revenue_by_stage(deals: list[dict[str, Any]]) -> dict[str, Any]:
    buckets = bucket_rows(deals, "stage", "amount")
    return {
        "type": "bar",
        "title": "Revenue by Stage",
        "data": [{"name": b.key, "value": b.total, "count": b.count} for b in buckets.values()],
        "xAxisKey": "name",
        "yAxisKey": "value",
    }


def accounts_by_industry(accounts: list[dict[str, Any]]) -> dict[str, Any]:
    buckets = bucket_rows(accounts, "industry")
    return {
        "type": "pie",
        "title": "Accounts by Industry",
        "data": [{"name": b.key, "value": b.count} for b in buckets.values()],
    }


def build_chart_data(message: str, structured: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Return chart data for the tool result, or None when no chart applies."""
    if not wants_chart(message):
        return None
    lowered = message.lower()

    deals = _rows(structured, "deals")
    if deals and ("revenue" in lowered or "stage" in lowered):
        return revenue_by_stage(deals)

    accounts = _rows(structured, "accounts")
    if accounts and "industry" in lowered:
        return accounts_by_industry(accounts)
    return None
