from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional


@dataclass(frozen=True)
class DateWindow:
    """Half-open ``[start, end)`` range over naive UTC timestamps."""

    slug: str
    start: datetime
    end: datetime


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_bound(value: str, *, is_end: bool) -> datetime:
    value = value.strip()
    if "T" not in value and " " not in value:
        day = date.fromisoformat(value)
        start_of_day = datetime(day.year, day.month, day.day)
        # a bare end date covers the whole day
        return start_of_day + timedelta(days=1) if is_end else start_of_day
    parsed = to_utc_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))
    return parsed + timedelta(microseconds=1) if is_end else parsed


def resolve_window(
    start: Optional[str],
    end: Optional[str],
) -> Optional[DateWindow]:
    if not start or not end:
        return None
    try:
        start_at = _parse_bound(start, is_end=False)
        end_at = _parse_bound(end, is_end=True)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {exc}") from exc
    if start_at >= end_at:
        raise ValueError("Start date must be before end date")
    return DateWindow("custom", start_at, end_at)


def last_days(days: int, *, now: Optional[datetime] = None) -> DateWindow:
    now = to_utc_naive(now) if now else datetime.utcnow()
    return DateWindow(
        f"last_{days}_days",
        now - timedelta(days=days),
        now + timedelta(microseconds=1),
    )


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def trailing_months(months: int, *, today: Optional[date] = None) -> list[date]:
    """First-of-month dates for the ``months`` calendar months ending with today's."""
    today = today or datetime.utcnow().date()
    current = month_start(today)
    return [add_months(current, offset) for offset in range(-(months - 1), 1)]
