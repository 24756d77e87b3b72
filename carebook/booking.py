"""
Booking transaction coordinator.

A booking attempt moves START -> validated -> allocated -> committed, or
stops at the first failed check with a ``BookingError``. Reads made before
the write unit (hour occupancy, daily bookings) are advisory; the final
conflict re-check, the appointment insert and the published-slot
transition all happen inside one store transaction, backed by the
store's unique index on active appointments.

Doctor configuration and occupancy are read once per request and passed
down explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from carebook import allocator, notifier
from carebook.availability import period_of
from carebook.civil_time import (
    DayWindow,
    civil_tz,
    day_window,
    format_time_of_day,
    now_utc,
    parse_time_of_day,
)
from carebook.config import settings
from carebook.errors import (
    BlackoutConflict,
    BookingError,
    DuplicateDailyBooking,
    InvalidDate,
    InvalidSlotPeriod,
    InvalidStatusTransition,
    InvalidTemporalInput,
    MissingFields,
    NotFound,
    PastBooking,
    SlotCancelled,
    SlotConflict,
    StoreUnavailable,
)
from carebook.models import (
    STATUS_TRANSITIONS,
    Appointment,
    AppointmentStatus,
    DoctorSchedule,
    PublishedSlot,
    SlotStatus,
    TimeOffWindow,
)
from carebook.notifier import EventKind
from carebook.store import BookingStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared checks
# ---------------------------------------------------------------------------


def _window(civil_day: str) -> DayWindow:
    try:
        return day_window(civil_day)
    except InvalidTemporalInput as exc:
        raise InvalidDate(exc.message) from exc


def _normalise_time(time_str: str) -> str:
    return format_time_of_day(parse_time_of_day(time_str))


def _check_future(instant: datetime, now: datetime) -> None:
    if instant <= now:
        raise PastBooking("Cannot book an appointment in the past.")


def _check_blackout(store: BookingStore, doctor: Optional[DoctorSchedule], instant: datetime) -> None:
    if doctor is None:
        return
    for window in store.list_time_off(doctor.profile_id):
        if window.covers(instant):
            reason = f" ({window.reason})" if window.reason else ""
            raise BlackoutConflict(f"The doctor is unavailable at that time{reason}.")


def _allocate_checked(
    store: BookingStore,
    doctor_id: int,
    doctor: Optional[DoctorSchedule],
    window: DayWindow,
    requested_time: str,
    now: datetime,
    exclude_id: Optional[int] = None,
) -> str:
    """Capacity, past-date and blackout checks for a target day/time."""
    taken = store.taken_times(doctor_id, window.civil_day, exclude_id=exclude_id)
    final_time = allocator.allocate(requested_time, period_of(doctor), taken)
    instant = window.instant_at(final_time)
    _check_future(instant, now)
    _check_blackout(store, doctor, instant)
    return final_time


def _claim_slot(store: BookingStore, doctor_id: int, civil_day: str, time: str) -> Optional[PublishedSlot]:
    """Inside a write unit: verify the published slot (if any) is bookable."""
    slot = store.find_slot(doctor_id, civil_day, time)
    if slot is None:
        return None
    if slot.status is SlotStatus.CANCELLED:
        raise SlotCancelled(f"The {time} slot on {civil_day} was cancelled by the doctor.")
    if slot.status is SlotStatus.BOOKED:
        raise SlotConflict(f"The {time} slot on {civil_day} is already booked.")
    return slot


def _mark_booked(store: BookingStore, slot: Optional[PublishedSlot]) -> None:
    if slot is None:
        return
    if not store.transition_slot(slot.id, SlotStatus.BOOKED, expected=SlotStatus.AVAILABLE):
        raise SlotConflict(f"The {slot.time} slot on {slot.civil_day} was just booked.")


def _hospital_ids(store: BookingStore, doctor_id: int) -> list[int]:
    try:
        return store.hospital_ids_for_doctor(doctor_id)
    except StoreUnavailable as exc:
        logger.warning("Could not resolve hospitals for doctor %s: %s", doctor_id, exc)
        return []


def _publish(store: BookingStore, kind: EventKind, appt: Appointment, payload: dict) -> None:
    notifier.notify(
        kind,
        payload,
        doctor_id=appt.doctor_id,
        patient_id=appt.patient_id,
        hospital_ids=_hospital_ids(store, appt.doctor_id),
    )


def _optimistic_payload(
    appt: Appointment,
    civil_day: str,
    time: str,
    status: AppointmentStatus,
) -> dict:
    return {
        "id": appt.id,
        "status": status.value,
        "date": civil_day,
        "time": time,
        "doctor_id": appt.doctor_id,
        "patient_id": appt.patient_id,
        "optimistic": True,
    }


def _check_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if target not in STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Cannot move an appointment from {current.value} to {target.value}."
        )


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


def book_appointment(
    store: BookingStore,
    patient_id: Optional[int],
    doctor_id: Optional[int],
    civil_day: Optional[str],
    requested_time: Optional[str],
    notes: str = "",
    now: Optional[datetime] = None,
) -> Appointment:
    """Validate, allocate and commit a new appointment.

    Raises a ``BookingError`` subclass naming the first failed check.
    """
    now = now or now_utc()
    try:
        if not patient_id or not doctor_id or not civil_day or not requested_time:
            raise MissingFields("Doctor ID, date and time are required.")

        window = _window(civil_day)
        requested = _normalise_time(requested_time)

        if store.has_daily_booking(patient_id, doctor_id, window.civil_day):
            raise DuplicateDailyBooking(
                "You already have an appointment with this doctor on that day."
            )

        doctor = store.get_doctor(doctor_id)
        final_time = _allocate_checked(store, doctor_id, doctor, window, requested, now)

        with store.transaction():
            if store.has_daily_booking(patient_id, doctor_id, window.civil_day):
                raise DuplicateDailyBooking(
                    "You already have an appointment with this doctor on that day."
                )
            if store.conflict_exists(doctor_id, window.civil_day, final_time):
                raise SlotConflict(f"{final_time} on {window.civil_day} was just taken.")
            slot = _claim_slot(store, doctor_id, window.civil_day, final_time)
            appt = store.insert_appointment(
                doctor_id=doctor_id,
                patient_id=patient_id,
                civil_day=window.civil_day,
                time=final_time,
                notes=notes or "",
            )
            _mark_booked(store, slot)
    except BookingError as exc:
        logger.info(
            "Booking rejected (patient=%s doctor=%s %s %s): %s",
            patient_id, doctor_id, civil_day, requested_time, exc.reason,
        )
        raise

    logger.info(
        "Appointment %s booked: doctor %s, %s %s (requested %s)",
        appt.id, doctor_id, appt.civil_day, appt.time, requested,
    )
    _publish(store, EventKind.BOOKED, appt, {"doctor_id": doctor_id, "appointment_id": appt.id})
    return appt


def reschedule_appointment(
    store: BookingStore,
    appointment_id: int,
    new_civil_day: Optional[str] = None,
    new_time: Optional[str] = None,
    new_status: Optional[AppointmentStatus] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    """Move an appointment to a new day and/or time, optionally changing status."""
    now = now or now_utc()
    appt = store.get_appointment(appointment_id)
    if appt is None:
        raise NotFound(f"No appointment found with ID {appointment_id}.")
    if not new_civil_day and not new_time and new_status is None:
        raise MissingFields("Provide a new date, time or status.")

    try:
        target_status = new_status or appt.status
        if target_status != appt.status:
            _check_transition(appt.status, target_status)

        window = _window(new_civil_day) if new_civil_day else _window(appt.civil_day)
        target_time = _normalise_time(new_time) if new_time else appt.time
        moving = window.civil_day != appt.civil_day or target_time != appt.time

        if moving and not STATUS_TRANSITIONS[appt.status]:
            raise InvalidStatusTransition(
                f"Appointment {appointment_id} is already {appt.status.value}."
            )

        if moving and target_status is not AppointmentStatus.CANCELLED:
            if window.civil_day != appt.civil_day and store.has_daily_booking(
                appt.patient_id, appt.doctor_id, window.civil_day, exclude_id=appt.id
            ):
                raise DuplicateDailyBooking(
                    "The patient already has an appointment with this doctor on that day."
                )
            doctor = store.get_doctor(appt.doctor_id)
            target_time = _allocate_checked(
                store, appt.doctor_id, doctor, window, target_time, now, exclude_id=appt.id
            )
    except BookingError as exc:
        logger.info("Reschedule of %s rejected: %s", appointment_id, exc.reason)
        raise

    _publish(
        store,
        EventKind.UPDATED_OPTIMISTIC,
        appt,
        _optimistic_payload(appt, window.civil_day, target_time, target_status),
    )

    try:
        with store.transaction():
            slot = None
            if moving and target_status is not AppointmentStatus.CANCELLED:
                if window.civil_day != appt.civil_day and store.has_daily_booking(
                    appt.patient_id, appt.doctor_id, window.civil_day, exclude_id=appt.id
                ):
                    raise DuplicateDailyBooking(
                        "The patient already has an appointment with this doctor on that day."
                    )
                if store.conflict_exists(
                    appt.doctor_id, window.civil_day, target_time, exclude_id=appt.id
                ):
                    raise SlotConflict(f"{target_time} on {window.civil_day} was just taken.")
                slot = _claim_slot(store, appt.doctor_id, window.civil_day, target_time)
            updated = store.update_appointment(
                appt.id, window.civil_day, target_time, target_status
            )
            _mark_booked(store, slot)
    except BookingError as exc:
        logger.info("Reschedule of %s rejected at commit: %s", appointment_id, exc.reason)
        raise

    logger.info(
        "Appointment %s updated: %s %s %s",
        updated.id, updated.civil_day, updated.time, updated.status.value,
    )
    _publish(store, EventKind.UPDATED, updated, updated.model_dump(mode="json"))
    return updated


def update_appointment_status(
    store: BookingStore,
    appointment_id: int,
    status: AppointmentStatus,
) -> Appointment:
    appt = store.get_appointment(appointment_id)
    if appt is None:
        raise NotFound(f"No appointment found with ID {appointment_id}.")
    _check_transition(appt.status, status)

    _publish(
        store,
        EventKind.UPDATED_OPTIMISTIC,
        appt,
        _optimistic_payload(appt, appt.civil_day, appt.time, status),
    )
    with store.transaction():
        updated = store.update_appointment(appt.id, appt.civil_day, appt.time, status)

    logger.info("Appointment %s: %s -> %s", appt.id, appt.status.value, status.value)
    _publish(store, EventKind.UPDATED, updated, updated.model_dump(mode="json"))
    return updated


def get_appointment(store: BookingStore, appointment_id: int) -> Appointment:
    appt = store.get_appointment(appointment_id)
    if appt is None:
        raise NotFound(f"No appointment found with ID {appointment_id}.")
    return appt


def list_appointments(store: BookingStore, user_id: int) -> list[Appointment]:
    return store.list_appointments_for_user(user_id)


# ---------------------------------------------------------------------------
# Published slots
# ---------------------------------------------------------------------------


def publish_slot(store: BookingStore, doctor_id: int, civil_day: str, time: str) -> PublishedSlot:
    window = _window(civil_day)
    slot = store.insert_slot(doctor_id, window.civil_day, _normalise_time(time))
    logger.info("Slot %s published: doctor %s, %s %s", slot.id, doctor_id, slot.civil_day, slot.time)
    return slot


def cancel_slot(store: BookingStore, slot_id: int, reason: str = "") -> PublishedSlot:
    slot = store.get_slot(slot_id)
    if slot is None:
        raise NotFound(f"No slot found with ID {slot_id}.")
    with store.transaction():
        store.transition_slot(slot_id, SlotStatus.CANCELLED, notes=reason or slot.notes)
    logger.info("Slot %s cancelled", slot_id)
    return store.get_slot(slot_id)  # type: ignore[return-value]


def list_slots(store: BookingStore, doctor_id: int, civil_day: Optional[str] = None) -> list[PublishedSlot]:
    day = _window(civil_day).civil_day if civil_day else None
    return store.list_slots(doctor_id, day)


# ---------------------------------------------------------------------------
# Doctor configuration
# ---------------------------------------------------------------------------


def register_doctor(
    store: BookingStore,
    doctor_id: int,
    profile_id: int,
    hospital_ids: Optional[list[int]] = None,
) -> DoctorSchedule:
    with store.transaction():
        doctor = store.upsert_doctor(doctor_id, profile_id)
        for hospital_id in hospital_ids or []:
            store.add_hospital_membership(hospital_id, doctor_id)
    return doctor


def get_slot_period(store: BookingStore, doctor_id: int) -> int:
    return period_of(store.get_doctor(doctor_id))


def set_doctor_slot_period(store: BookingStore, doctor_id: int, minutes: int) -> DoctorSchedule:
    if minutes not in settings.allowed_slot_periods:
        allowed = ", ".join(str(m) for m in settings.allowed_slot_periods)
        raise InvalidSlotPeriod(f"Invalid minutes. Allowed: {allowed}")
    if not store.set_slot_period(doctor_id, minutes):
        raise NotFound(f"Doctor {doctor_id} has no schedule profile.")

    logger.info("Doctor %s slot period set to %d minutes", doctor_id, minutes)
    notifier.deliver(
        notifier.Scope.DOCTOR,
        doctor_id,
        EventKind.SLOT_PERIOD_UPDATED,
        {"doctor_id": doctor_id, "minutes": minutes},
    )
    return store.get_doctor(doctor_id)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Time off
# ---------------------------------------------------------------------------


def _aware(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=civil_tz())
    return instant


def _check_interval(start: datetime, end: datetime) -> None:
    if end < start:
        raise InvalidTemporalInput("Time-off end must not be before its start.")


def set_time_off(
    store: BookingStore,
    doctor_profile_id: int,
    start: datetime,
    end: datetime,
    reason: str = "",
) -> TimeOffWindow:
    start, end = _aware(start), _aware(end)
    _check_interval(start, end)
    window = store.insert_time_off(doctor_profile_id, start, end, reason)
    logger.info(
        "Time off %s for profile %s: %s -> %s", window.id, doctor_profile_id, start, end
    )
    return window


def update_time_off(
    store: BookingStore,
    time_off_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> TimeOffWindow:
    current = store.get_time_off(time_off_id)
    if current is None:
        raise NotFound(f"No time-off window with ID {time_off_id}.")
    new_start = _aware(start) if start else current.start
    new_end = _aware(end) if end else current.end
    _check_interval(new_start, new_end)
    return store.update_time_off(  # type: ignore[return-value]
        time_off_id, new_start, new_end, current.reason if reason is None else reason
    )


def delete_time_off(store: BookingStore, time_off_id: int) -> None:
    if not store.delete_time_off(time_off_id):
        raise NotFound(f"No time-off window with ID {time_off_id}.")


def list_time_off(store: BookingStore, doctor_profile_id: int) -> list[TimeOffWindow]:
    return store.list_time_off(doctor_profile_id)
