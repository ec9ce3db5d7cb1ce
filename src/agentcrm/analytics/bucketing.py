"""Group-and-summarize helper shared by the analytics engine and chat charts."""

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

UNKNOWN_KEY = "Unknown"

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def to_number(value: Any) -> float:
    """Lenient numeric read: leading number of a string, 0 for anything else."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def bucket_key(value: Any) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return UNKNOWN_KEY
    return str(value)


@dataclass
class Bucket:
    key: str
    count: int = 0
    total: float = 0.0

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def summarize(self, aggregation: str) -> float | int:
        """The bucket's value for ``count``, ``sum`` or ``avg``."""
        if aggregation == "count":
            return self.count
        if aggregation == "sum":
            return self.total
        if aggregation == "avg":
            return self.average
        raise ValueError(f"Unsupported aggregation: {aggregation}")


def bucket_rows(
    rows: Iterable[Mapping[str, Any]],
    group_by: str | None,
    value_column: str | None = None,
) -> dict[str, Bucket]:
    """Bucket rows by ``group_by`` (missing -> "Unknown"), in first-seen order.

    With no ``group_by`` everything lands in one bucket keyed ``""``, which
    exists even for an empty input.
    """
    buckets: dict[str, Bucket] = {}
    if group_by is None:
        buckets[""] = Bucket("")
    for row in rows:
        key = "" if group_by is None else bucket_key(row.get(group_by))
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = Bucket(key)
        bucket.count += 1
        if value_column is not None:
            bucket.total += to_number(row.get(value_column))
    return buckets
