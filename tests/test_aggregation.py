"""Tests for the aggregation engine and the LLM query planner."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from agentcrm.analytics import AggregationEngine, QueryPlan, aggregate
from agentcrm.analytics.plan import Aggregation, LLMQueryPlanner
from agentcrm.analytics.schema import map_column, normalize_filter
from agentcrm.errors import LLMError, PlanningError
from agentcrm.store.record_store import Filter
from agentcrm.tenancy import TenantResolution

TEAM_A = TenantResolution.scoped("team-a")
NOW = datetime(2026, 10, 19, 10, 0)


class FixedPlanner:
    """Returns a canned plan, or raises the given error."""

    def __init__(self, plan=None, error=None):
        self._plan = plan
        self._error = error
        self.questions = []

    def plan(self, text):
        self.questions.append(text)
        if self._error is not None:
            raise self._error
        return self._plan


def make_plan(**fields):
    return QueryPlan.model_validate(fields)


def engine_for(store, plan=None, error=None):
    return AggregationEngine(store, FixedPlanner(plan, error), now=NOW)


# =============================================================================
# In-process aggregation
# =============================================================================

class TestAggregate:
    ROWS = [
        {"stage": "Discovery", "amount": 1000},
        {"stage": "Discovery", "amount": "2000"},
        {"stage": None, "amount": None},
    ]

    def test_count_by_group_with_unknown(self):
        assert aggregate(self.ROWS, Aggregation.COUNT, "stage", None) == [
            {"stage": "Discovery", "count": 2},
            {"stage": "Unknown", "count": 1},
        ]

    def test_sum_treats_bad_values_as_zero(self):
        assert aggregate(self.ROWS, Aggregation.SUM, None, "amount") == [{"total": 3000.0}]

    def test_average_of_nothing_is_zero(self):
        assert aggregate([], Aggregation.AVG, None, "amount") == [{"average": 0.0}]

    def test_grouped_average_of_nothing_is_empty(self):
        assert aggregate([], Aggregation.AVG, "stage", "amount") == []

    def test_none_returns_rows(self):
        assert aggregate(self.ROWS, Aggregation.NONE, None, None) is self.ROWS


# =============================================================================
# Engine
# =============================================================================

class TestAggregationEngine:
    def test_deals_by_stage(self, seeded_store):
        plan = make_plan(table="deals", aggregation="count", groupBy="stage", chartType="bar", title="Deals by stage")
        result = engine_for(seeded_store, plan).analyze_and_fetch_data("Show deals by stage", tenant=TEAM_A)

        assert result.error is None
        assert sorted(result.data, key=lambda r: r["stage"]) == [
            {"stage": "Discovery", "count": 2},
            {"stage": "Proposal", "count": 1},
        ]
        assert result.to_payload()["config"] == {
            "type": "bar",
            "title": "Deals by stage",
            "xAxis": "stage",
            "yAxis": "count",
        }

    def test_total_amount_by_stage(self, seeded_store):
        plan = make_plan(table="deals", aggregation="sum", groupBy="stage", valueColumn="amount")
        result = engine_for(seeded_store, plan).analyze_and_fetch_data("Total by stage", tenant=TEAM_A)

        assert sorted(result.data, key=lambda r: r["stage"]) == [
            {"stage": "Discovery", "total": 3000.0},
            {"stage": "Proposal", "total": 5000.0},
        ]
        assert result.config.y_axis == "total"

    def test_average_without_value_column_uses_amount(self, seeded_store):
        plan = make_plan(table="deals", aggregation="avg")
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert result.data == [{"average": pytest.approx(8000 / 3)}]
        assert result.config.y_axis == "average"
        assert result.config.x_axis is None

    def test_missing_group_value_is_unknown(self, seeded_store):
        plan = make_plan(table="accounts", aggregation="count", groupBy="industry", chartType="pie")
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert sorted(result.data, key=lambda r: r["industry"]) == [
            {"industry": "Manufacturing", "count": 1},
            {"industry": "Software", "count": 1},
            {"industry": "Unknown", "count": 1},
        ]

    def test_empty_average_is_zero(self, seeded_store):
        plan = make_plan(
            table="deals",
            aggregation="avg",
            valueColumn="amount",
            filters=[{"column": "stage", "operator": "=", "value": "Closed Won"}],
        )
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert result.data == [{"average": 0.0}]

    def test_legacy_value_alias(self, seeded_store):
        plan = make_plan(table="deals", aggregation="sum", valueColumn="opportunity_value")
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert result.data == [{"total": 8000.0}]

    def test_closed_status_means_won(self, seeded_store, ids):
        seeded_store.update("deals", ids["deal_p1"], {"status": "won"})
        plan = make_plan(
            table="deals",
            aggregation="count",
            filters=[{"column": "status", "operator": "=", "value": "closed"}],
        )
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert result.data == [{"count": 1}]

    def test_numeric_filter(self, seeded_store):
        plan = make_plan(
            table="deals",
            aggregation="count",
            filters=[{"column": "amount", "operator": ">", "value": "1500"}],
        )
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert result.data == [{"count": 2}]

    def test_other_team_rows_are_excluded(self, seeded_store):
        plan = make_plan(table="deals", aggregation="count")

        team_a = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)
        team_b = engine_for(seeded_store, plan).run_plan(plan, TenantResolution.scoped("team-b"))

        assert team_a.data == [{"count": 3}]
        assert team_b.data == [{"count": 1}]

    def test_unscoped_tenant_sees_unscoped_rows(self, seeded_store):
        seeded_store.insert("deals", {"name": "Legacy", "amount": 10})
        plan = make_plan(table="deals", aggregation="count")

        result = engine_for(seeded_store, plan).run_plan(plan, TenantResolution.unscoped("anonymous caller"))

        assert result.data == [{"count": 1}]

    def test_date_filter(self, store):
        store.insert("deals", {"name": "Old", "team_id": "team-a", "created_at": "2026-09-15T12:00:00"})
        store.insert("deals", {"name": "New", "team_id": "team-a", "created_at": "2026-10-05T12:00:00"})
        plan = make_plan(table="deals", dateFilter={"column": "created_at", "operator": ">=", "value": "this month"})

        result = engine_for(store, plan).run_plan(plan, TEAM_A)

        assert [row["name"] for row in result.data] == ["New"]

    def test_today_on_a_non_utc_clock(self, store):
        # 01:30 on Oct 19 at UTC+14 is 11:30 on Oct 18 in UTC
        now = datetime(2026, 10, 19, 1, 30, tzinfo=timezone(timedelta(hours=14)))
        store.insert("deals", {"name": "Just now", "team_id": "team-a", "created_at": "2026-10-18T11:00:00"})
        store.insert("deals", {"name": "Yesterday", "team_id": "team-a", "created_at": "2026-10-18T09:00:00"})
        plan = make_plan(
            table="deals", aggregation="count", dateFilter={"column": "created_at", "operator": ">=", "value": "today"}
        )

        result = AggregationEngine(store, FixedPlanner(plan), now=now).run_plan(plan, TEAM_A)

        assert result.data == [{"count": 1}]

    def test_due_date_bound_stays_local(self, store):
        now = datetime(2026, 10, 19, 1, 30, tzinfo=timezone(timedelta(hours=14)))
        plan = make_plan(table="interactions", dateFilter={"column": "due_date", "value": "today"})

        query = AggregationEngine(store, FixedPlanner(plan), now=now).build_query(plan, TEAM_A)

        assert Filter("due_date", "gte", "2026-10-19T00:00:00") in query.filters

    def test_unknown_date_phrase_is_ignored(self, seeded_store):
        plan = make_plan(table="deals", aggregation="count", dateFilter={"value": "the good old days"})
        query = engine_for(seeded_store, plan).build_query(plan, TEAM_A)

        assert query.filters == [Filter("team_id", "eq", "team-a")]

    def test_unknown_group_by_falls_back_to_ungrouped(self, seeded_store):
        plan = make_plan(table="deals", aggregation="count", groupBy="region")
        result = engine_for(seeded_store, plan).run_plan(plan, TEAM_A)

        assert result.data == [{"count": 3}]

    def test_list_queries_default_limit(self, seeded_store):
        plan = make_plan(table="contacts", sortBy="created_at")
        query = engine_for(seeded_store, plan).build_query(plan)

        assert query.limit == 100
        assert query.filters == []
        assert query.sort[0].column == "created_at"

    def test_planning_error_becomes_error_result(self, seeded_store):
        engine = engine_for(seeded_store, error=PlanningError("bad", planner_name="query_planner"))

        result = engine.analyze_and_fetch_data("gibberish", tenant=TEAM_A)

        assert result.data == []
        assert "couldn't turn that question into a query" in result.to_payload()["error"]

    def test_llm_error_propagates(self, seeded_store):
        engine = engine_for(seeded_store, error=LLMError("down", provider="ollama"))

        with pytest.raises(LLMError):
            engine.analyze_and_fetch_data("Show deals by stage", tenant=TEAM_A)


# =============================================================================
# Schema helpers
# =============================================================================

class TestSchema:
    @pytest.mark.parametrize(
        "table,column,expected",
        [
            ("deals", "opportunity_value", "amount"),
            ("deals", " stage. ", "stage"),
            ("interactions", "opportunity_id", "deal_id"),
            ("deals", "region", None),
            ("contacts", None, None),
        ],
    )
    def test_map_column(self, table, column, expected):
        assert map_column(table, column) == expected

    def test_invalid_status_filter_is_skipped(self):
        assert normalize_filter("deals", "status", "=", "pending") is None

    def test_unsupported_operator_is_skipped(self):
        assert normalize_filter("deals", "stage", "between", "a") is None

    def test_blank_value_is_skipped(self):
        assert normalize_filter("deals", "stage", "=", "  ") is None


# =============================================================================
# LLM query planner
# =============================================================================

class TestLLMQueryPlanner:
    def test_plan_from_fenced_output(self):
        response = '```json\n{"table": "deals", "aggregation": "COUNT", "groupBy": "stage", "filters": null}\n```'
        with patch("agentcrm.llm.planner.call_llm", return_value=response) as mock_llm:
            plan = LLMQueryPlanner().plan("Show deals by stage")

        assert plan.table == "deals"
        assert plan.aggregation == Aggregation.COUNT
        assert plan.group_by == "stage"
        assert plan.filters == []
        assert mock_llm.call_args.kwargs["role"] == "planner"
        assert "Show deals by stage" in mock_llm.call_args.args[0][1]["content"]

    def test_repair_after_invalid_output(self):
        good = json.dumps({"table": "contacts", "aggregation": "count"})
        with patch("agentcrm.llm.planner.call_llm", side_effect=['{"table": "leads"}', good]) as mock_llm:
            plan = LLMQueryPlanner().plan("How many contacts?")

        assert plan.table == "contacts"
        assert mock_llm.call_count == 2
        assert "had errors" in mock_llm.call_args.args[0][1]["content"]

    def test_gives_up_after_retries(self):
        with patch("agentcrm.llm.planner.call_llm", return_value="not json"):
            with pytest.raises(PlanningError) as excinfo:
                LLMQueryPlanner(max_retries=1).plan("???")

        assert excinfo.value.planner_name == "query_planner"
        assert excinfo.value.details["last_response"] == "not json"

    def test_single_filter_object_is_wrapped(self):
        response = json.dumps(
            {"table": "deals", "filters": {"column": "stage", "operator": "=", "value": "Proposal"}, "dateFilter": {}}
        )
        with patch("agentcrm.llm.planner.call_llm", return_value=response):
            plan = LLMQueryPlanner().plan("Proposal deals")

        assert [f.column for f in plan.filters] == ["stage"]
        assert plan.date_filter is None
