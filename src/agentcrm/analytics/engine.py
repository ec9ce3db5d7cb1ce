"""Aggregation engine: analytics question -> query plan -> rows -> chart data.

The record store has no group-by, so the engine runs one filtered read and
aggregates in-process with the shared bucketing helper.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import Field

from agentcrm.analytics.bucketing import bucket_rows, to_number
from agentcrm.analytics.plan import Aggregation, LLMQueryPlanner, QueryPlan
from agentcrm.analytics.schema import NUMERIC_COLUMNS, OPERATOR_MAP, map_column, normalize_filter
from agentcrm.dates import resolve_date_filter, to_store_clock
from agentcrm.errors import PlanningError, RecordStoreError
from agentcrm.llm.planner import Planner
from agentcrm.models import CamelModel
from agentcrm.store.record_store import Query, RecordStore
from agentcrm.tenancy import TenantResolution

logger = logging.getLogger(__name__)

DEFAULT_ROW_LIMIT = 100
NO_DATA_MESSAGE = "No data found for this query"

Y_AXIS = {Aggregation.COUNT: "count", Aggregation.AVG: "average", Aggregation.SUM: "total"}
RESULT_KEY = {Aggregation.COUNT: "count", Aggregation.SUM: "total", Aggregation.AVG: "average"}

_DATE_OPERATORS = {">", "<", ">=", "<=", "="}
_DATE_ONLY_COLUMNS = {"close_date"}
# Written in the user's local time rather than the store's UTC.
_LOCAL_TIME_COLUMNS = {"due_date"}


class ChartConfig(CamelModel):
    type: str
    title: str
    x_axis: str | None = None
    y_axis: str


class AnalyticsResult(CamelModel):
    data: list[dict[str, Any]] = Field(default_factory=list)
    config: ChartConfig
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error}
        return {"data": self.data, "config": self.config.to_payload()}


def aggregate(rows: list[dict[str, Any]], aggregation: Aggregation, group_by: str | None, value_column: str | None) -> list[dict[str, Any]]:
    """Reduce rows per the plan. Empty input gives zeros, never NaN."""
    if aggregation == Aggregation.NONE:
        return rows

    result_key = RESULT_KEY[aggregation]
    buckets = bucket_rows(rows, group_by, None if aggregation == Aggregation.COUNT else value_column)
    if group_by is None:
        return [{result_key: buckets[""].summarize(aggregation.value)}]
    return [
        {group_by: bucket.key, result_key: bucket.summarize(aggregation.value)}
        for bucket in buckets.values()
    ]


class AggregationEngine:
    """Answers analytics questions against the record store."""

    def __init__(
        self,
        store: RecordStore,
        planner: Planner[QueryPlan] | None = None,
        *,
        now: datetime | None = None,
    ):
        self.store = store
        self.planner = planner or LLMQueryPlanner()
        self.now = now

    def build_query(self, plan: QueryPlan, tenant: TenantResolution | None = None) -> Query:
        table = plan.table
        query = Query(table)

        if tenant is not None:
            if tenant.is_scoped:
                query.where("team_id", "eq", tenant.team_id)
            else:
                query.where("team_id", "is_null")

        for flt in plan.filters:
            normalized = normalize_filter(table, flt.column, flt.operator, flt.value)
            if normalized is None:
                logger.info("Skipping filter %s", flt.model_dump())
                continue
            column, op, value = normalized
            if column in NUMERIC_COLUMNS.get(table, ()) and op not in ("like", "ilike"):
                value = to_number(value)
            query.where(column, op, value)

        if plan.date_filter is not None:
            self._apply_date_filter(query, plan)

        sort_column = map_column(table, plan.sort_by)
        if sort_column is not None:
            query.order_by(sort_column, descending=plan.sort_order == "desc")

        if plan.limit is not None:
            query.limit = plan.limit
        elif plan.aggregation == Aggregation.NONE:
            query.limit = DEFAULT_ROW_LIMIT
        return query

    def _apply_date_filter(self, query: Query, plan: QueryPlan) -> None:
        date_filter = plan.date_filter
        column = map_column(plan.table, date_filter.column or "created_at")
        if column is None:
            return
        operator = (date_filter.operator or ">=").strip()
        if operator not in _DATE_OPERATORS:
            operator = ">="
        start = resolve_date_filter(date_filter.value, self.now)
        if start is None:
            logger.info("Date phrase %r not recognised, no date filter applied", date_filter.value)
            return
        if column in _DATE_ONLY_COLUMNS:
            bound = start.date().isoformat()
        elif column in _LOCAL_TIME_COLUMNS:
            bound = start.replace(tzinfo=None).isoformat(timespec="seconds")
        else:
            bound = to_store_clock(start).isoformat(timespec="seconds")
        query.where(column, OPERATOR_MAP[operator], bound)

    def run_plan(self, plan: QueryPlan, tenant: TenantResolution | None = None) -> AnalyticsResult:
        group_by = map_column(plan.table, plan.group_by)
        if plan.group_by and group_by is None:
            logger.info("Group-by column %r unknown on %s, aggregating ungrouped", plan.group_by, plan.table)
        value_column = map_column(plan.table, plan.value_column)
        if plan.aggregation in (Aggregation.SUM, Aggregation.AVG) and value_column is None and plan.table == "deals":
            value_column = "amount"

        config = ChartConfig(
            type=plan.chart_type.value,
            title=plan.title,
            x_axis=group_by,
            y_axis=Y_AXIS.get(plan.aggregation, "total"),
        )

        query = self.build_query(plan, tenant)
        try:
            rows = self.store.select(query)
        except RecordStoreError as e:
            logger.error("Analytics query on %s failed: %s", plan.table, e)
            return AnalyticsResult(config=config, error=f"Query failed: {e}")

        data = aggregate(rows, plan.aggregation, group_by, value_column)
        logger.info("Analytics %s/%s: %d rows -> %d points", plan.table, plan.aggregation.value, len(rows), len(data))
        return AnalyticsResult(data=data, config=config)

    def analyze_and_fetch_data(self, question: str, *, tenant: TenantResolution | None = None) -> AnalyticsResult:
        """Plan, query and aggregate one analytics question.

        Raises:
            LLMError: If the planner's model provider is unreachable
        """
        try:
            plan = self.planner.plan(question)
        except PlanningError as e:
            logger.warning("Could not plan analytics question %r: %s", question, e)
            return AnalyticsResult(
                config=ChartConfig(type="table", title="Results", y_axis="total"),
                error="I couldn't turn that question into a query. Try naming a table, e.g. deals or contacts.",
            )
        return self.run_plan(plan, tenant)
