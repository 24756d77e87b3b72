"""
Civil-day normalisation.

All day-scoped queries use the half-open window
``[civil day start, civil day start + 24h)`` under a single fixed UTC
offset. Build a ``DayWindow`` once per request and pass it along so every
component sees the same boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from carebook.config import settings
from carebook.errors import InvalidTemporalInput


def civil_tz(offset_minutes: int | None = None) -> timezone:
    if offset_minutes is None:
        offset_minutes = settings.civil_utc_offset_minutes
    return timezone(timedelta(minutes=offset_minutes))


def parse_day(date_str: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a calendar date."""
    try:
        return date.fromisoformat(str(date_str).strip())
    except (TypeError, ValueError):
        raise InvalidTemporalInput(f"'{date_str}' is not a valid YYYY-MM-DD date.")


def parse_time_of_day(time_str: str) -> time:
    """Parse an ``HH:MM`` string. Seconds are not accepted."""
    raw = str(time_str).strip()
    parts = raw.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise InvalidTemporalInput(f"'{time_str}' is not a valid HH:MM time.")
    try:
        return time(int(parts[0]), int(parts[1]))
    except ValueError:
        raise InvalidTemporalInput(f"'{time_str}' is not a valid HH:MM time.")


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def civil_day_start(date_str: str, offset_minutes: int | None = None) -> datetime:
    """Instant of local midnight for ``date_str`` under the civil offset."""
    day = parse_day(date_str)
    return datetime.combine(day, time(0, 0), tzinfo=civil_tz(offset_minutes))


def civil_instant(date_str: str, time_str: str, offset_minutes: int | None = None) -> datetime:
    day = parse_day(date_str)
    tod = parse_time_of_day(time_str)
    return datetime.combine(day, tod, tzinfo=civil_tz(offset_minutes))


@dataclass(frozen=True)
class DayWindow:
    civil_day: str
    start: datetime
    offset_minutes: int

    def instant_at(self, time_str: str) -> datetime:
        return civil_instant(self.civil_day, time_str, self.offset_minutes)


def day_window(date_str: str, offset_minutes: int | None = None) -> DayWindow:
    if offset_minutes is None:
        offset_minutes = settings.civil_utc_offset_minutes
    start = civil_day_start(date_str, offset_minutes)
    return DayWindow(
        civil_day=start.date().isoformat(), start=start, offset_minutes=offset_minutes
    )


def to_utc_iso(instant: datetime) -> str:
    """Serialise an aware instant as UTC ISO-8601 for storage."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=civil_tz())
    return instant.astimezone(timezone.utc).isoformat()


def from_utc_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
