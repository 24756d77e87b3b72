"""
Availability calculator — an hour-by-hour capacity/occupancy report for
one doctor's civil day.

This is a point-in-time read, not a reservation. A report may be stale by
the time a booking is attempted; the booking coordinator re-checks.
"""

from __future__ import annotations

import logging
from typing import Optional

from carebook import capacity
from carebook.civil_time import DayWindow, day_window
from carebook.config import settings
from carebook.models import CapacityReport, DoctorSchedule, SlotsAndAvailability, SlotStatus
from carebook.store import BookingStore

logger = logging.getLogger(__name__)


def period_of(doctor: Optional[DoctorSchedule]) -> int:
    if doctor is None or not doctor.slot_period_minutes:
        return settings.default_slot_period_minutes
    return doctor.slot_period_minutes


def default_hours() -> list[int]:
    return list(range(settings.default_open_hour, settings.default_close_hour))


def _reporting_hours(published_times: list[str]) -> list[int]:
    if published_times:
        return sorted({capacity.hour_of(t) for t in published_times})
    return default_hours()


def build_reports(
    hours: list[int],
    period_minutes: int,
    taken: set[str],
) -> list[CapacityReport]:
    cap = capacity.capacity_per_hour(period_minutes)
    reports = []
    for hour in hours:
        booked = sum(1 for t in capacity.sub_slot_times(hour, period_minutes) if t in taken)
        reports.append(
            CapacityReport(
                hour=f"{hour:02d}",
                capacity=cap,
                booked_count=booked,
                is_full=booked >= cap,
                label_from=f"{hour:02d}:00",
                label_to=f"{(hour + 1) % 24:02d}:00",
            )
        )
    return reports


def _snapshot(store: BookingStore, doctor_id: int, window: DayWindow) -> SlotsAndAvailability:
    period = period_of(store.get_doctor(doctor_id))
    taken = store.taken_times(doctor_id, window.civil_day)
    published = [
        s.time
        for s in store.list_slots(doctor_id, window.civil_day, SlotStatus.AVAILABLE)
    ]
    hours = build_reports(_reporting_hours(published), period, taken)
    return SlotsAndAvailability(
        period_minutes=period,
        published_slot_times=published,
        hours=hours,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_availability(store: BookingStore, doctor_id: int, civil_day: str) -> list[CapacityReport]:
    window = day_window(civil_day)
    return _snapshot(store, doctor_id, window).hours


def get_slots_and_availability(
    store: BookingStore,
    doctor_id: int,
    civil_day: str,
) -> SlotsAndAvailability:
    window = day_window(civil_day)
    result = _snapshot(store, doctor_id, window)
    logger.debug(
        "Availability for doctor %s on %s: %d published, %d hours",
        doctor_id, window.civil_day, len(result.published_slot_times), len(result.hours),
    )
    return result
