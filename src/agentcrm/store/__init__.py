"""Record store interface and its DuckDB implementation."""

from agentcrm.store.duckdb_store import DuckDBRecordStore
from agentcrm.store.record_store import Filter, Query, RecordStore, Sort

__all__ = ["DuckDBRecordStore", "Filter", "Query", "RecordStore", "Sort"]
