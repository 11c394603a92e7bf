"""
Datetime utilities.

Provides timezone-aware datetime functions.
"""

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return utc_now().date()


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to naive datetimes.

    Some drivers (SQLite) drop tzinfo on read even for timezone-aware
    columns. Values are always stored as UTC, so a naive value is UTC.

    Args:
        value: Datetime read from the database

    Returns:
        Timezone-aware datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
