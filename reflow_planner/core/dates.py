from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any


def normalize_date(value: Any) -> date:
    """Reduce a date-like value to a calendar date (no time-of-day).

    Accepts ``date``, ``datetime`` and ISO-8601 strings. Timezone-aware
    datetimes are converted to UTC first, so ``2024-01-01T23:30:00-05:00``
    lands on ``2024-01-02``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        if len(text) == 10:
            return date.fromisoformat(text)
        return normalize_date(datetime.fromisoformat(text))
    raise ValueError(f"not a date: {value!r}")


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def end_for(start: date, duration: int) -> date:
    """Inclusive end date of a span that starts on ``start`` and lasts ``duration`` days."""
    return start + timedelta(days=duration - 1)


def duration_between(start: date, end: date) -> int:
    """Inclusive day count from ``start`` to ``end``, never less than 1."""
    return max(1, (end - start).days + 1)
