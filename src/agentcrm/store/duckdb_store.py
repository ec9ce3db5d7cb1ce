"""DuckDB-backed record store for CRM collections."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import duckdb

from agentcrm.errors import NotFoundError, RecordStoreError, UniqueViolationError
from agentcrm.store.record_store import Filter, Query

logger = logging.getLogger(__name__)

# Timestamps are stored as ISO-8601 text so date filters can compare them
# with plain string operators.
TABLES: dict[str, dict[str, str]] = {
    "accounts": {
        "id": "VARCHAR PRIMARY KEY",
        "name": "VARCHAR NOT NULL",
        "industry": "VARCHAR",
        "website": "VARCHAR",
        "assigned_to": "VARCHAR",
        "team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "contacts": {
        "id": "VARCHAR PRIMARY KEY",
        "first_name": "VARCHAR NOT NULL",
        "last_name": "VARCHAR NOT NULL",
        "account_id": "VARCHAR",
        "email": "VARCHAR",
        "phone": "VARCHAR",
        "role": "VARCHAR",
        "assigned_to": "VARCHAR",
        "team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "deals": {
        "id": "VARCHAR PRIMARY KEY",
        "account_id": "VARCHAR",
        "pipeline_id": "VARCHAR",
        "name": "VARCHAR NOT NULL",
        "amount": "DOUBLE",
        "stage": "VARCHAR DEFAULT 'Lead'",
        "status": "VARCHAR DEFAULT 'open' CHECK (status IN ('open', 'won', 'lost'))",
        "close_date": "VARCHAR",
        "assigned_to": "VARCHAR",
        "team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "interactions": {
        "id": "VARCHAR PRIMARY KEY",
        "contact_id": "VARCHAR",
        "deal_id": "VARCHAR",
        "type": "VARCHAR NOT NULL CHECK (type IN ('call', 'meeting', 'email', 'note'))",
        "summary": "VARCHAR",
        "transcript": "VARCHAR",
        "sentiment": "VARCHAR",
        "due_date": "VARCHAR",
        "assigned_to": "VARCHAR",
        "team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "tags": {
        "id": "VARCHAR PRIMARY KEY",
        "tag_name": "VARCHAR NOT NULL",
        "color": "VARCHAR DEFAULT '#A2B758'",
        "entity_type": "VARCHAR DEFAULT 'all'",
        "usage_count": "INTEGER DEFAULT 0",
        "team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "pipelines": {
        "id": "VARCHAR PRIMARY KEY",
        "name": "VARCHAR NOT NULL",
        "stages": "VARCHAR",
        "team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "user_team_preferences": {
        "id": "VARCHAR PRIMARY KEY",
        "user_id": "VARCHAR NOT NULL UNIQUE",
        "current_team_id": "VARCHAR",
        "created_at": "VARCHAR",
        "updated_at": "VARCHAR",
    },
    "team_memberships": {
        "id": "VARCHAR PRIMARY KEY",
        "team_id": "VARCHAR NOT NULL",
        "user_id": "VARCHAR NOT NULL",
        "role": "VARCHAR DEFAULT 'member'",
        "created_at": "VARCHAR",
    },
}

TABLE_CONSTRAINTS: dict[str, list[str]] = {
    "contacts": ["UNIQUE (team_id, email)"],
    "tags": ["UNIQUE (team_id, tag_name)"],
}

_COMPARISON_SQL = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "like": "LIKE",
    "ilike": "ILIKE",
}


def _utc_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _coerce(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return value


def _translate_error(exc: duckdb.Error, collection: str) -> RecordStoreError:
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, duckdb.ConstraintException) and (
        "duplicate key" in lowered or "unique" in lowered
    ):
        return UniqueViolationError(message, collection=collection)
    return RecordStoreError(message, code=type(exc).__name__, collection=collection)


class DuckDBRecordStore:
    """Thread-safe record store that opens a short-lived connection per call."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path).expanduser()
        self._lock = threading.RLock()
        self._ensure_tables()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(str(self.db_path), read_only=False)

    def _ensure_tables(self) -> None:
        with self._lock:
            conn = self._connect()
            try:
                for table, columns in TABLES.items():
                    parts = [f"{_quote(col)} {ddl}" for col, ddl in columns.items()]
                    parts.extend(TABLE_CONSTRAINTS.get(table, []))
                    conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(parts)})")
            finally:
                conn.close()

    # ------------------------------------------------------------------
    # SQL helpers
    # ------------------------------------------------------------------

    def columns(self, collection: str) -> tuple[str, ...]:
        if collection not in TABLES:
            raise RecordStoreError(f"Unknown collection: {collection}", collection=collection)
        return tuple(TABLES[collection])

    def _check_column(self, collection: str, column: str) -> str:
        if column not in TABLES[collection]:
            raise RecordStoreError(
                f"Column '{column}' does not exist on {collection}", collection=collection
            )
        return _quote(column)

    def _where(self, collection: str, filters: list[Filter]) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for flt in filters:
            col = self._check_column(collection, flt.column)
            if flt.op == "is_null" or (flt.op == "eq" and flt.value is None):
                clauses.append(f"{col} IS NULL")
            elif flt.op == "not_null":
                clauses.append(f"{col} IS NOT NULL")
            elif flt.op == "ieq":
                clauses.append(f"lower(trim({col})) = lower(trim(?))")
                params.append(_coerce(flt.value))
            elif flt.op == "in":
                values = list(flt.value or [])
                if not values:
                    clauses.append("FALSE")
                    continue
                clauses.append(f"{col} IN ({', '.join('?' for _ in values)})")
                params.extend(_coerce(v) for v in values)
            else:
                clauses.append(f"{col} {_COMPARISON_SQL[flt.op]} ?")
                params.append(_coerce(flt.value))
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _run(self, collection: str, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(sql, params)
                if cursor.description is None:
                    return []
                names = [d[0] for d in cursor.description]
                return [dict(zip(names, row)) for row in cursor.fetchall()]
            except duckdb.Error as e:
                logger.warning("Store error on %s: %s", collection, e)
                raise _translate_error(e, collection) from e
            finally:
                conn.close()

    # ------------------------------------------------------------------
    # RecordStore API
    # ------------------------------------------------------------------

    def select(self, query: Query) -> list[dict[str, Any]]:
        self.columns(query.collection)
        where, params = self._where(query.collection, query.filters)
        sql = f"SELECT * FROM {query.collection}{where}"
        if query.sort:
            order = ", ".join(
                f"{self._check_column(query.collection, s.column)} "
                f"{'DESC' if s.descending else 'ASC'} NULLS LAST"
                for s in query.sort
            )
            sql += f" ORDER BY {order}"
        if query.limit is not None:
            sql += f" LIMIT {max(0, int(query.limit))}"
        return self._run(query.collection, sql, params)

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        rows = self.select(Query(collection, [Filter("id", "eq", record_id)], limit=1))
        return rows[0] if rows else None

    def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        columns = self.columns(collection)
        row = {k: _coerce(v) for k, v in record.items() if v is not None}
        for key in row:
            self._check_column(collection, key)
        row.setdefault("id", str(uuid.uuid4()))
        now = _utc_iso()
        if "created_at" in columns:
            row.setdefault("created_at", now)
        if "updated_at" in columns:
            row.setdefault("updated_at", now)

        names = ", ".join(_quote(k) for k in row)
        placeholders = ", ".join("?" for _ in row)
        sql = f"INSERT INTO {collection} ({names}) VALUES ({placeholders}) RETURNING *"
        rows = self._run(collection, sql, list(row.values()))
        return rows[0]

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        columns = self.columns(collection)
        changes = {k: _coerce(v) for k, v in changes.items() if k != "id"}
        if "updated_at" in columns:
            changes["updated_at"] = _utc_iso()
        if not changes:
            existing = self.get(collection, record_id)
            if existing is None:
                raise NotFoundError(f"No {collection} record with id {record_id}", collection=collection)
            return existing

        assignments = ", ".join(f"{self._check_column(collection, k)} = ?" for k in changes)
        sql = f"UPDATE {collection} SET {assignments} WHERE id = ? RETURNING *"
        rows = self._run(collection, sql, [*changes.values(), record_id])
        if not rows:
            raise NotFoundError(f"No {collection} record with id {record_id}", collection=collection)
        return rows[0]

    def update_where(self, collection: str, filters: list[Filter], changes: dict[str, Any]) -> int:
        self.columns(collection)
        if not changes:
            return 0
        assignments = ", ".join(f"{self._check_column(collection, k)} = ?" for k in changes)
        where, params = self._where(collection, filters)
        sql = f"UPDATE {collection} SET {assignments}{where} RETURNING id"
        rows = self._run(collection, sql, [*(_coerce(v) for v in changes.values()), *params])
        return len(rows)

    def delete(self, collection: str, record_id: str) -> bool:
        return self.delete_where(collection, [Filter("id", "eq", record_id)]) > 0

    def delete_where(self, collection: str, filters: list[Filter]) -> int:
        self.columns(collection)
        where, params = self._where(collection, filters)
        if not where:
            raise RecordStoreError(f"Refusing unfiltered delete on {collection}", collection=collection)
        rows = self._run(collection, f"DELETE FROM {collection}{where} RETURNING id", params)
        return len(rows)
