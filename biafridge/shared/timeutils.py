"""Clock helpers. All persisted timestamps are naive UTC."""

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def day_window(day: date) -> tuple[datetime, datetime]:
    """Half-open [00:00, next 00:00) window for a calendar day."""
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)
