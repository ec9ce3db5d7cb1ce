"""QueryPlan schema and the LLM planner that produces it."""

from enum import Enum
from typing import Any, Literal

from pydantic import Field, field_validator

from agentcrm.analytics.schema import ANALYTICS_SCHEMA
from agentcrm.llm.planner import LLMPlanner
from agentcrm.models import CamelModel


class Aggregation(str, Enum):
    NONE = "none"
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"


class ChartType(str, Enum):
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    NUMBER = "number"
    TABLE = "table"


class PlanFilter(CamelModel):
    column: str
    operator: str = "="
    value: Any = None


class DateFilter(CamelModel):
    column: str = "created_at"
    operator: str = ">="
    value: str | None = None


class QueryPlan(CamelModel):
    """Structured reading of one analytics question."""

    table: Literal["deals", "contacts", "accounts", "interactions"]
    aggregation: Aggregation = Aggregation.NONE
    group_by: str | None = None
    value_column: str | None = None
    filters: list[PlanFilter] = Field(default_factory=list)
    date_filter: DateFilter | None = None
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] = "desc"
    limit: int | None = Field(None, ge=1, le=1000)
    chart_type: ChartType = ChartType.TABLE
    title: str = "Results"

    @field_validator("aggregation", "chart_type", mode="before")
    @classmethod
    def _lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("group_by", "value_column", "sort_by", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


QUERY_PLANNER_SYSTEM_PROMPT = f"""You are a CRM analytics planner. Turn the user's question into a query plan. Output ONLY valid JSON. No markdown. No commentary.

{ANALYTICS_SCHEMA}

Output format:
{{
  "table": "deals" | "contacts" | "accounts" | "interactions",
  "aggregation": "none" | "count" | "sum" | "avg",
  "groupBy": "<column or null>",
  "valueColumn": "<numeric column for sum/avg or null>",
  "filters": [{{"column": "<column>", "operator": "=|!=|>|<|>=|<=|like|ilike", "value": "<value>"}}],
  "dateFilter": {{"column": "created_at", "operator": ">=", "value": "this month"}} or null,
  "sortBy": "<column or null>",
  "sortOrder": "asc" | "desc",
  "limit": <number or null>,
  "chartType": "bar" | "line" | "pie" | "number" | "table",
  "title": "<short chart title>"
}}

Rules:
- Use only the tables and columns listed above. There are no joins.
- "by <column>" means groupBy that column.
- "how many" means aggregation "count"; "total" means "sum"; "average" means "avg".
- sum and avg need valueColumn (for deals use "amount").
- Deal status is one of open, won, lost. "closed" or "closed won" means won.
- Only add a dateFilter when the question names a period (this week, this month, last month, this quarter, today, last 7 days).
- Single numbers use chartType "number"; grouped counts use "bar" or "pie"; lists use "table"."""

QUERY_PLANNER_USER_PROMPT_TEMPLATE = """Question: {text}

Return the query plan JSON now."""


class LLMQueryPlanner(LLMPlanner[QueryPlan]):
    name = "query_planner"
    llm_role = "planner"
    system_prompt = QUERY_PLANNER_SYSTEM_PROMPT
    user_prompt_template = QUERY_PLANNER_USER_PROMPT_TEMPLATE
    output_schema = QueryPlan

    def preprocess(self, data: dict[str, Any]) -> dict[str, Any]:
        # Models sometimes emit "filters": null or a single filter object.
        filters = data.get("filters")
        if filters is None:
            data["filters"] = []
        elif isinstance(filters, dict):
            data["filters"] = [filters]
        if data.get("dateFilter") in ({}, ""):
            data["dateFilter"] = None
        return data
