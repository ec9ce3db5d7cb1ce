"""Relative date phrases with a deliberately small vocabulary.

Two resolvers live here:

* ``resolve_due_date`` - task due dates from the chat flow ("tomorrow at
  3pm", "next Monday"). Returns ``YYYY-MM-DDTHH:MM:SS`` local time, 09:00
  when no time of day is given.
* ``resolve_date_filter`` - lower bounds for analytics date filters
  ("this month", "last 7 days"), worked out on the caller's wall clock.
  ``to_store_clock`` turns such a bound into the naive UTC the store
  stamps ``created_at`` and ``updated_at`` with.

Anything outside the vocabulary resolves to ``None``; callers drop the
due date or the filter.
"""

import re
from datetime import date, datetime, time, timedelta, timezone

DEFAULT_DUE_TIME = time(9, 0)
DUE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_WITH_MERIDIEM = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)(?![a-z])")
_TIME_24H = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_TIME_AT_HOUR = re.compile(r"\bat\s+(\d{1,2})\b")
_WEEKDAY = re.compile(r"\b(next\s+)?(" + "|".join(WEEKDAYS) + r")\b")


def _parse_iso(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _time_of_day(text: str) -> time | None:
    if "noon" in text or "midday" in text:
        return time(12, 0)

    match = _TIME_WITH_MERIDIEM.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2) or 0)
        meridiem = match.group(3).replace(".", "")
        if not (1 <= hour <= 12 and minute < 60):
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
        return time(hour, minute)

    match = _TIME_24H.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour < 24 and minute < 60:
            return time(hour, minute)
        return None

    match = _TIME_AT_HOUR.search(text)
    if match:
        hour = int(match.group(1))
        # "at 3" in a work context means the afternoon
        if 1 <= hour <= 7:
            hour += 12
        if hour < 24:
            return time(hour, 0)
    return None


def _day(text: str, today: date) -> date | None:
    if "day after tomorrow" in text:
        return today + timedelta(days=2)
    if "tomorrow" in text:
        return today + timedelta(days=1)
    if "today" in text or "tonight" in text:
        return today

    match = _WEEKDAY.search(text)
    if match:
        target = WEEKDAYS.index(match.group(2))
        ahead = (target - today.weekday()) % 7
        # "Monday" and "next Monday" both mean the next Monday after today
        return today + timedelta(days=ahead or 7)
    return None


def resolve_due_date(value: str | None, now: datetime | None = None) -> str | None:
    """Resolve a due-date phrase or ISO string to a local ISO timestamp."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    now = now or datetime.now()

    parsed = _parse_iso(text)
    if parsed is not None:
        if len(text) == 10:
            parsed = datetime.combine(parsed.date(), DEFAULT_DUE_TIME)
        return parsed.strftime(DUE_DATE_FORMAT)

    lowered = text.lower()
    day = _day(lowered, now.date())
    at = _time_of_day(lowered)
    if day is None and at is None:
        return None
    return datetime.combine(day or now.date(), at or DEFAULT_DUE_TIME).strftime(DUE_DATE_FORMAT)


def _quarter_start(today: date) -> date:
    first_month = 3 * ((today.month - 1) // 3) + 1
    return date(today.year, first_month, 1)


def to_store_clock(moment: datetime) -> datetime:
    """Naive UTC for an aware datetime; a naive one is taken to be UTC already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_bound(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def resolve_date_filter(value: str | None, now: datetime | None = None) -> datetime | None:
    """Resolve an analytics date phrase to the datetime it starts from.

    Defaults to the local wall clock, so bounds come back timezone-aware and
    "today" means local midnight. Pass them through ``to_store_clock`` before
    comparing with stored timestamps.
    """
    if not value:
        return None
    now = now or datetime.now().astimezone()
    text = str(value).strip().lower()
    midnight = datetime.combine(now.date(), time(0, 0), tzinfo=now.tzinfo)

    if "this week" in text or "last 7 days" in text:
        return now - timedelta(days=7)
    if "this month" in text:
        return midnight.replace(day=1)
    if "last month" in text:
        first_this_month = now.date().replace(day=1)
        last_month_end = first_this_month - timedelta(days=1)
        return datetime.combine(last_month_end.replace(day=1), time(0, 0), tzinfo=now.tzinfo)
    if "quarter" in text or "q4" in text:
        return datetime.combine(_quarter_start(now.date()), time(0, 0), tzinfo=now.tzinfo)
    if "soon" in text or "next 30 days" in text:
        return now
    if "today" in text:
        return midnight

    return _parse_bound(str(value).strip())
