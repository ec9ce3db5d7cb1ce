"""Tests for chat chart data."""

import pytest

from agentcrm.chat.charts import build_chart_data, wants_chart

DEALS = [
    {"name": "A", "stage": "Discovery", "amount": 1000},
    {"name": "B", "stage": "Discovery", "amount": 2000},
    {"name": "C", "stage": "Proposal", "amount": 5000},
    {"name": "D", "stage": None, "amount": None},
]


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Show revenue by stage", True),
        ("give me a CHART of deals", True),
        ("industry breakdown", True),
        ("list my deals", False),
        ("", False),
    ],
)
def test_wants_chart(message, expected):
    assert wants_chart(message) is expected


def test_revenue_by_stage():
    chart = build_chart_data("show revenue by stage", {"deals": DEALS})

    assert chart["type"] == "bar"
    assert chart["title"] == "Revenue by Stage"
    assert chart["xAxisKey"] == "name"
    assert chart["yAxisKey"] == "value"
    assert chart["data"] == [
        {"name": "Discovery", "value": 3000.0, "count": 2},
        {"name": "Proposal", "value": 5000.0, "count": 1},
        {"name": "Unknown", "value": 0.0, "count": 1},
    ]


def test_accounts_by_industry():
    accounts = [{"industry": "Software"}, {"industry": "Software"}, {"industry": ""}]

    chart = build_chart_data("Accounts by industry chart", {"accounts": accounts})

    assert chart == {
        "type": "pie",
        "title": "Accounts by Industry",
        "data": [{"name": "Software", "value": 2}, {"name": "Unknown", "value": 1}],
    }


def test_no_keyword_no_chart():
    assert build_chart_data("list deals", {"deals": DEALS}) is None


def test_chart_keyword_without_matching_rows():
    assert build_chart_data("revenue chart", {"contacts": [{"first_name": "Ann"}]}) is None
    assert build_chart_data("revenue chart", None) is None


def test_malformed_rows_are_ignored():
    assert build_chart_data("revenue by stage", {"deals": "not a list"}) is None
