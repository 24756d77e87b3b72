"""
Booking outcomes that are not successes.

Every ``BookingError`` is an expected result of bad input or normal
contention for a calendar slot; callers may retry with a different time.
``StoreUnavailable`` is deliberately outside that hierarchy so an
infrastructure fault is never reported as "slot unavailable".
"""

from __future__ import annotations


class BookingError(Exception):
    reason = "BookingError"
    status_code = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)
        self.message = message or self.reason

    def to_dict(self) -> dict:
        return {"reason": self.reason, "message": self.message}


class MissingFields(BookingError):
    reason = "MissingFields"


class InvalidTemporalInput(BookingError):
    reason = "InvalidTemporalInput"


class InvalidDate(BookingError):
    reason = "InvalidDate"


class PastBooking(BookingError):
    reason = "PastBooking"


class InvalidSlotPeriod(BookingError):
    reason = "InvalidSlotPeriod"


class InvalidStatusTransition(BookingError):
    reason = "InvalidStatusTransition"


class NotFound(BookingError):
    reason = "NotFound"
    status_code = 404


class DuplicateDailyBooking(BookingError):
    reason = "DuplicateDailyBooking"
    status_code = 409


class HourFullyBooked(BookingError):
    reason = "HourFullyBooked"
    status_code = 409


class BlackoutConflict(BookingError):
    reason = "BlackoutConflict"
    status_code = 409


class SlotConflict(BookingError):
    reason = "SlotConflict"
    status_code = 409


class SlotCancelled(BookingError):
    reason = "SlotCancelled"
    status_code = 409


class StoreUnavailable(Exception):
    """The relational store failed for reasons unrelated to a business rule."""
