"""
Slot allocator — choose the concrete sub-slot to book within the requested hour.

The caller's exact time wins if it is a real sub-slot and still free;
otherwise the earliest free sub-slot in that hour. Nothing is persisted
here: the result is a candidate for the booking coordinator to commit.
"""

from __future__ import annotations

from carebook import capacity
from carebook.errors import HourFullyBooked


def allocate(requested_time: str, slot_period_minutes: int, taken: set[str]) -> str:
    """Return the sub-slot time to book.

    Args:
        requested_time: ``HH:MM`` the caller asked for.
        slot_period_minutes: the doctor's configured period.
        taken: times held by non-cancelled appointments on that day.

    Raises:
        HourFullyBooked: every sub-slot of the hour is taken.
    """
    hour = capacity.hour_of(requested_time)
    candidates = capacity.sub_slot_times(hour, slot_period_minutes)

    if requested_time in candidates and requested_time not in taken:
        return requested_time

    for candidate in candidates:
        if candidate not in taken:
            return candidate

    raise HourFullyBooked(
        f"All {len(candidates)} slots between {hour:02d}:00 and "
        f"{(hour + 1) % 24:02d}:00 are taken."
    )
