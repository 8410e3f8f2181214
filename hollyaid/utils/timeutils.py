"""
Timezone helpers.

All timestamps are stored and compared as aware UTC datetimes. SQLite hands
back naive values for DateTime(timezone=True) columns, so anything read from
the database goes through ensure_utc() before comparison.
"""
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_week(value: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing ``value``."""
    value = ensure_utc(value)
    day_start = value.replace(hour=0, minute=0, second=0, microsecond=0)
    return day_start - timedelta(days=day_start.weekday())


def month_bounds(value: datetime) -> tuple[datetime, datetime]:
    """First instant of the month containing ``value`` and of the month after it."""
    value = ensure_utc(value)
    start = value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)
