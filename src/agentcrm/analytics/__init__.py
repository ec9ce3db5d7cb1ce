"""Analytics: LLM query plans executed and aggregated in-process."""

from agentcrm.analytics.engine import AggregationEngine, AnalyticsResult, aggregate
from agentcrm.analytics.plan import QueryPlan

__all__ = ["AggregationEngine", "AnalyticsResult", "QueryPlan", "aggregate"]
