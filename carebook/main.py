"""
Appointment scheduling engine — FastAPI server

Handles:
  - Availability and capacity reports per doctor/day
  - Booking, rescheduling and status transitions
  - Published slots, slot period configuration and doctor time off
  - Server-sent event subscriptions scoped by hospital, doctor and patient

Callers are authenticated and authorised upstream; every route here
trusts the identifiers it is given.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from carebook import availability, booking, notifier
from carebook.config import settings
from carebook.errors import BookingError, StoreUnavailable
from carebook.models import (
    Appointment,
    BookAppointmentRequest,
    CancelSlotRequest,
    CapacityReport,
    DoctorSchedule,
    PublishedSlot,
    PublishSlotRequest,
    RegisterDoctorRequest,
    RescheduleRequest,
    SlotPeriodRequest,
    SlotsAndAvailability,
    StatusRequest,
    TimeOffRequest,
    TimeOffUpdate,
    TimeOffWindow,
)
from carebook.notifier import Scope
from carebook.scheduler import get_scheduler
from carebook.store import BookingStore, get_store

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: the heartbeat scheduler runs for the life of the process
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = get_scheduler()
    scheduler.start()
    logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    yield
    scheduler.shutdown(wait=False)


app = FastAPI(
    title="Carebook Scheduling Engine",
    version="1.0.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={
            "reason": "StoreUnavailable",
            "message": "Scheduling is temporarily unavailable. Please try again shortly.",
        },
    )


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "subscribers": len(notifier.all_subscribers()),
    }


# ---------------------------------------------------------------------------
# Doctors: registration and slot period
# ---------------------------------------------------------------------------

@app.post("/doctors", response_model=DoctorSchedule, status_code=201)
async def register_doctor(body: RegisterDoctorRequest, store: BookingStore = Depends(get_store)):
    return booking.register_doctor(store, body.doctor_id, body.profile_id, body.hospital_ids)


@app.get("/doctors/{doctor_id}/slot-period")
async def get_slot_period(doctor_id: int, store: BookingStore = Depends(get_store)):
    return {"slot_period_minutes": booking.get_slot_period(store, doctor_id)}


@app.patch("/doctors/{doctor_id}/slot-period", response_model=DoctorSchedule)
async def set_slot_period(
    doctor_id: int,
    body: SlotPeriodRequest,
    store: BookingStore = Depends(get_store),
):
    return booking.set_doctor_slot_period(store, doctor_id, body.minutes)


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------

@app.get("/doctors/{doctor_id}/availability", response_model=list[CapacityReport])
async def get_availability(doctor_id: int, date: str, store: BookingStore = Depends(get_store)):
    return availability.get_availability(store, doctor_id, date)


@app.get("/doctors/{doctor_id}/schedule", response_model=SlotsAndAvailability)
async def get_schedule(doctor_id: int, date: str, store: BookingStore = Depends(get_store)):
    return availability.get_slots_and_availability(store, doctor_id, date)


# ---------------------------------------------------------------------------
# Published slots
# ---------------------------------------------------------------------------

@app.get("/doctors/{doctor_id}/slots", response_model=list[PublishedSlot])
async def list_slots(
    doctor_id: int,
    date: Optional[str] = None,
    store: BookingStore = Depends(get_store),
):
    return booking.list_slots(store, doctor_id, date)


@app.post("/slots", response_model=PublishedSlot, status_code=201)
async def publish_slot(body: PublishSlotRequest, store: BookingStore = Depends(get_store)):
    return booking.publish_slot(store, body.doctor_id, body.date, body.time)


@app.patch("/slots/{slot_id}/cancel", response_model=PublishedSlot)
async def cancel_slot(
    slot_id: int,
    body: Optional[CancelSlotRequest] = None,
    store: BookingStore = Depends(get_store),
):
    return booking.cancel_slot(store, slot_id, body.reason if body else "")


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------

@app.post("/appointments", response_model=Appointment, status_code=201)
async def book_appointment(body: BookAppointmentRequest, store: BookingStore = Depends(get_store)):
    return booking.book_appointment(
        store,
        patient_id=body.patient_id,
        doctor_id=body.doctor_id,
        civil_day=body.date,
        requested_time=body.time,
        notes=body.notes,
    )


@app.get("/appointments/{appointment_id}", response_model=Appointment)
async def get_appointment(appointment_id: int, store: BookingStore = Depends(get_store)):
    return booking.get_appointment(store, appointment_id)


@app.get("/users/{user_id}/appointments", response_model=list[Appointment])
async def list_user_appointments(user_id: int, store: BookingStore = Depends(get_store)):
    return booking.list_appointments(store, user_id)


@app.patch("/appointments/{appointment_id}", response_model=Appointment)
async def reschedule_appointment(
    appointment_id: int,
    body: RescheduleRequest,
    store: BookingStore = Depends(get_store),
):
    return booking.reschedule_appointment(
        store,
        appointment_id,
        new_civil_day=body.date,
        new_time=body.time,
        new_status=body.status,
    )


@app.patch("/appointments/{appointment_id}/status", response_model=Appointment)
async def update_appointment_status(
    appointment_id: int,
    body: StatusRequest,
    store: BookingStore = Depends(get_store),
):
    return booking.update_appointment_status(store, appointment_id, body.status)


# ---------------------------------------------------------------------------
# Time off
# ---------------------------------------------------------------------------

@app.post("/time-off", response_model=TimeOffWindow, status_code=201)
async def create_time_off(body: TimeOffRequest, store: BookingStore = Depends(get_store)):
    return booking.set_time_off(store, body.doctor_profile_id, body.start, body.end, body.reason)


@app.get("/doctor-profiles/{profile_id}/time-off", response_model=list[TimeOffWindow])
async def list_time_off(profile_id: int, store: BookingStore = Depends(get_store)):
    return booking.list_time_off(store, profile_id)


@app.patch("/time-off/{time_off_id}", response_model=TimeOffWindow)
async def update_time_off(
    time_off_id: int,
    body: TimeOffUpdate,
    store: BookingStore = Depends(get_store),
):
    return booking.update_time_off(store, time_off_id, body.start, body.end, body.reason)


@app.delete("/time-off/{time_off_id}", status_code=204)
async def delete_time_off(time_off_id: int, store: BookingStore = Depends(get_store)):
    booking.delete_time_off(store, time_off_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Live subscriptions (server-sent events)
# Delivery is at-most-once: nothing is replayed after a reconnect.
# ---------------------------------------------------------------------------

def _event_stream(request: Request, scope: Scope, key: int) -> StreamingResponse:
    async def events():
        channel = notifier.PushChannel()
        notifier.subscribe(scope, key, channel)
        try:
            yield notifier.format_sse("connected", {"scope": scope.value, "id": key})
            async for chunk in channel.stream():
                if await request.is_disconnected():
                    break
                yield chunk
        finally:
            notifier.unsubscribe(scope, key, channel)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/events/hospitals/{hospital_id}")
async def hospital_events(hospital_id: int, request: Request):
    return _event_stream(request, Scope.HOSPITAL, hospital_id)


@app.get("/events/doctors/{doctor_id}")
async def doctor_events(doctor_id: int, request: Request):
    return _event_stream(request, Scope.DOCTOR, doctor_id)


@app.get("/events/patients/{patient_id}")
async def patient_events(patient_id: int, request: Request):
    return _event_stream(request, Scope.PATIENT, patient_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("carebook.main:app", host="0.0.0.0", port=settings.port)
