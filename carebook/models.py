"""
Scheduling data model.

Doctor -> Published Slot / Appointment / Time-Off Window, plus the
derived, never-persisted Capacity Report.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SlotStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


# Allowed status moves; CANCELLED and COMPLETED are terminal
STATUS_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
}


# =============================================================================
# Persisted entities
# =============================================================================


class DoctorSchedule(BaseModel):
    doctor_id: int
    profile_id: int
    slot_period_minutes: int = 15


class PublishedSlot(BaseModel):
    id: int
    doctor_id: int
    civil_day: str
    time: str
    status: SlotStatus = SlotStatus.AVAILABLE
    notes: str = ""


class Appointment(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    civil_day: str
    time: str
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: str = ""
    created_at: datetime
    updated_at: datetime


class TimeOffWindow(BaseModel):
    id: int
    doctor_profile_id: int
    start: datetime
    end: datetime
    reason: str = ""

    def covers(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


# =============================================================================
# Derived
# =============================================================================


class CapacityReport(BaseModel):
    hour: str
    capacity: int
    booked_count: int
    is_full: bool
    label_from: str
    label_to: str


class SlotsAndAvailability(BaseModel):
    period_minutes: int
    published_slot_times: list[str]
    hours: list[CapacityReport]


# =============================================================================
# Request bodies
# =============================================================================


class BookAppointmentRequest(BaseModel):
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None
    date: Optional[str] = None
    time: Optional[str] = None
    notes: str = ""


class RescheduleRequest(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    status: Optional[AppointmentStatus] = None


class StatusRequest(BaseModel):
    status: AppointmentStatus


class PublishSlotRequest(BaseModel):
    doctor_id: int
    date: str
    time: str


class CancelSlotRequest(BaseModel):
    reason: str = ""


class SlotPeriodRequest(BaseModel):
    minutes: int


class TimeOffRequest(BaseModel):
    doctor_profile_id: int
    start: datetime
    end: datetime
    reason: str = ""


class TimeOffUpdate(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    reason: Optional[str] = None


class RegisterDoctorRequest(BaseModel):
    doctor_id: int
    profile_id: int
    hospital_ids: list[int] = Field(default_factory=list)
