"""Record store interface used by every agentcrm component.

The store exposes select/insert/update/delete over named collections with a
small filter vocabulary. It has no group-by; aggregation happens in-process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

FILTER_OPERATORS = frozenset(
    {
        "eq",
        "neq",
        "gt",
        "gte",
        "lt",
        "lte",
        "like",
        "ilike",
        "ieq",  # case-insensitive equality after trimming both sides
        "in",
        "is_null",
        "not_null",
    }
)


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Sort:
    column: str
    descending: bool = False


@dataclass
class Query:
    """A single-collection read."""

    collection: str
    filters: list[Filter] = field(default_factory=list)
    sort: list[Sort] = field(default_factory=list)
    limit: int | None = None

    def where(self, column: str, op: str, value: Any = None) -> "Query":
        self.filters.append(Filter(column, op, value))
        return self

    def order_by(self, column: str, descending: bool = False) -> "Query":
        self.sort.append(Sort(column, descending))
        return self


class RecordStore(Protocol):
    """Persistence collaborator. Implementations raise ``RecordStoreError``."""

    def select(self, query: Query) -> list[dict[str, Any]]:
        ...

    def get(self, collection: str, record_id: str) -> dict[str, Any] | None:
        ...

    def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        ...

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        ...

    def update_where(self, collection: str, filters: list[Filter], changes: dict[str, Any]) -> int:
        ...

    def delete(self, collection: str, record_id: str) -> bool:
        ...

    def delete_where(self, collection: str, filters: list[Filter]) -> int:
        ...

    def columns(self, collection: str) -> tuple[str, ...]:
        ...
