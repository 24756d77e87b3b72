"""Hour-level capacity derived from a doctor's slot period."""

from __future__ import annotations


def capacity_per_hour(slot_period_minutes: int) -> int:
    return max(1, 60 // slot_period_minutes)


def sub_slot_offsets(slot_period_minutes: int) -> list[int]:
    return list(range(0, 60, slot_period_minutes))


def sub_slot_times(hour: int, slot_period_minutes: int) -> list[str]:
    """Bookable ``HH:MM`` start times within ``hour``, ascending."""
    return [f"{hour:02d}:{offset:02d}" for offset in sub_slot_offsets(slot_period_minutes)]


def hour_of(time_str: str) -> int:
    return int(str(time_str)[:2])
