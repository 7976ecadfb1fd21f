from __future__ import annotations

from datetime import date, datetime, time

from ..core.exceptions import InvalidTimeWindow

_CLOCK_FORMATS = ("%H:%M", "%H:%M:%S")


def parse_iso_date(value: str | date) -> date:
    """Parse YYYY-MM-DD string into date (datetimes are truncated to their day)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InvalidTimeWindow(f"Invalid date {value!r} (expected YYYY-MM-DD)")


def parse_clock(value: str) -> time:
    """Parse a wall-clock string (HH:MM or HH:MM:SS)."""
    text = (value or "").strip() if isinstance(value, str) else ""
    for fmt in _CLOCK_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise InvalidTimeWindow(f"Invalid time {value!r} (expected HH:MM)")


def format_clock(value: time) -> str:
    """Canonical clock string: 08:00, or 08:00:30 when seconds are set."""
    return value.strftime("%H:%M:%S" if value.second else "%H:%M")


def format_minutes(minutes: int) -> str:
    """480 -> '8h 0m'."""
    hours, rest = divmod(int(minutes), 60)
    return f"{hours}h {rest}m"


def minutes_to_hours(minutes: int) -> float:
    return round(int(minutes) / 60, 2)


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()
