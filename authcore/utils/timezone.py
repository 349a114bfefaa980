"""
Timezone Utilities.

Golden rule: everything is stored and compared in UTC.

Some drivers (SQLite) hand back naive datetimes even for
``DateTime(timezone=True)`` columns, so values read from storage go
through ``to_utc`` before being compared with ``utc_now()``.
"""

from datetime import datetime, timezone

# UTC constant
UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC, treating naive values as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_timestamp(dt: datetime) -> int:
    """Seconds since the epoch, as used by JWT ``iat``/``exp`` claims."""
    return int(to_utc(dt).timestamp())


def from_timestamp(value: int | float) -> datetime:
    """Inverse of ``to_timestamp``."""
    return datetime.fromtimestamp(value, UTC)
