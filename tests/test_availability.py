"""Tests for the hour-by-hour availability report."""

from carebook import availability, booking
from carebook.models import AppointmentStatus

from conftest import DAY, DOCTOR_ID


class TestDefaultHours:
    def test_no_published_slots_uses_default_window(self, store):
        reports = availability.get_availability(store, DOCTOR_ID, DAY)

        assert [r.hour for r in reports] == [f"{h:02d}" for h in range(9, 22)]
        assert reports[0].label_from == "09:00"
        assert reports[-1].label_to == "22:00"

    def test_empty_day_reports_full_capacity_free(self, store):
        reports = availability.get_availability(store, DOCTOR_ID, DAY)

        assert all(r.capacity == 4 and r.booked_count == 0 and not r.is_full for r in reports)

    def test_unknown_doctor_gets_default_period(self, store):
        reports = availability.get_availability(store, 999, DAY)

        assert reports[0].capacity == 4


class TestPublishedSlotHours:
    def test_hours_follow_published_slots(self, store):
        booking.publish_slot(store, DOCTOR_ID, DAY, "14:30")
        booking.publish_slot(store, DOCTOR_ID, DAY, "10:00")
        booking.publish_slot(store, DOCTOR_ID, DAY, "10:15")

        result = availability.get_slots_and_availability(store, DOCTOR_ID, DAY)

        assert [r.hour for r in result.hours] == ["10", "14"]
        assert result.published_slot_times == ["10:00", "10:15", "14:30"]

    def test_cancelled_slots_are_not_listed(self, store):
        slot = booking.publish_slot(store, DOCTOR_ID, DAY, "11:00")
        booking.cancel_slot(store, slot.id, "Clinic closed")

        result = availability.get_slots_and_availability(store, DOCTOR_ID, DAY)

        assert result.published_slot_times == []
        assert result.hours[0].hour == "09"


class TestOccupancy:
    def test_booked_count_and_full_flag(self, store, book):
        booking.set_doctor_slot_period(store, DOCTOR_ID, 30)
        book("10:00", patient_id=1)
        book("10:30", patient_id=2)
        book("11:00", patient_id=3)

        reports = {r.hour: r for r in availability.get_availability(store, DOCTOR_ID, DAY)}

        assert reports["10"].capacity == 2
        assert reports["10"].booked_count == 2
        assert reports["10"].is_full
        assert reports["11"].booked_count == 1
        assert not reports["11"].is_full

    def test_cancelled_appointments_free_capacity(self, store, book):
        appt = book("10:00")
        booking.update_appointment_status(store, appt.id, AppointmentStatus.CANCELLED)

        reports = {r.hour: r for r in availability.get_availability(store, DOCTOR_ID, DAY)}

        assert reports["10"].booked_count == 0

    def test_other_days_do_not_count(self, store, book):
        book("10:00", day="2030-01-16")

        reports = {r.hour: r for r in availability.get_availability(store, DOCTOR_ID, DAY)}

        assert reports["10"].booked_count == 0

    def test_repeated_reads_are_identical(self, store, book):
        book("10:15")

        first = availability.get_slots_and_availability(store, DOCTOR_ID, DAY)
        second = availability.get_slots_and_availability(store, DOCTOR_ID, DAY)

        assert first == second
