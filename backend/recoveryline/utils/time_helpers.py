"""UTC timestamp helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so every timestamp read from the database is normalised here before
it is compared.
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Return today's date in UTC."""
    return utc_now().date()


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a datetime to timezone-aware UTC (naive means UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the [start, end) UTC datetimes covering a calendar day."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    end = datetime.fromordinal(day.toordinal() + 1).replace(tzinfo=timezone.utc)
    return start, end
