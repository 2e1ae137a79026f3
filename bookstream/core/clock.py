"""UTC time helpers.

Every timestamp the engine stores or compares is a naive datetime in UTC, so
values read back from SQLite and PostgreSQL compare cleanly with ``utcnow()``.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime]) -> datetime:
    """Return *now* as naive UTC, defaulting to the current time."""
    return as_naive_utc(now) if now is not None else utcnow()
