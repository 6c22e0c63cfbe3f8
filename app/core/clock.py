"""
UTC time helpers.

SQLite hands back naive datetimes even for DateTime(timezone=True) columns, so every
timestamp crossing the store boundary is normalised to an aware UTC value here.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
