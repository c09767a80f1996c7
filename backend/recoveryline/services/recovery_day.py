"""Recovery day calculator.

Day 0 is the day of surgery, day 1 the first day after it. Negative offsets
are pre-operative days; `recovery_day` floors them at 0 while
`days_since_surgery` keeps the sign for pre-op scheduling.
"""

from datetime import date, datetime, timedelta

from recoveryline.errors import InvalidDateError
from recoveryline.utils.time_helpers import ensure_utc, utc_today


def _coerce_date(value: object, name: str) -> date:
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            if "T" in value or " " in value.strip():
                return ensure_utc(datetime.fromisoformat(value.strip())).date()
            return date.fromisoformat(value.strip())
        except ValueError:
            raise InvalidDateError(f"{name} is not an ISO date: {value!r}") from None
    raise InvalidDateError(f"{name} must be a date, got {type(value).__name__}")


def days_since_surgery(surgery_date: object, reference: object | None = None) -> int:
    """Signed whole days from surgery to the reference date (default: today, UTC)."""
    surgery = _coerce_date(surgery_date, "surgery_date")
    ref = utc_today() if reference is None else _coerce_date(reference, "reference")
    return (ref - surgery).days


def recovery_day(surgery_date: object, reference: object | None = None) -> int:
    """Current recovery day, never negative.

    >>> recovery_day(date(2024, 1, 1), date(2024, 1, 8))
    7
    """
    return max(0, days_since_surgery(surgery_date, reference))


def date_for_day(surgery_date: object, day: int) -> date:
    """Calendar date of a recovery day."""
    if isinstance(day, bool) or not isinstance(day, int):
        raise InvalidDateError(f"day must be an integer, got {type(day).__name__}")
    return _coerce_date(surgery_date, "surgery_date") + timedelta(days=day)
