"""Shared fixtures: an in-memory store with one registered doctor."""

from datetime import datetime, timezone

import pytest

from carebook import booking, notifier
from carebook.store import BookingStore

DOCTOR_ID = 7
PROFILE_ID = 70
HOSPITAL_IDS = [1, 2]
PATIENT_ID = 500
DAY = "2030-01-15"
NOW = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


class Recorder:
    """Subscriber that keeps every event it is sent."""

    def __init__(self):
        self.events = []

    def send(self, event, payload):
        self.events.append((event, payload))

    @property
    def names(self):
        return [name for name, _ in self.events]


class BrokenSubscriber:
    def send(self, event, payload):
        raise RuntimeError("connection reset")


@pytest.fixture(autouse=True)
def clean_subscribers():
    notifier.clear()
    yield
    notifier.clear()


@pytest.fixture
def store():
    db = BookingStore(":memory:")
    db.init_schema()
    booking.register_doctor(db, DOCTOR_ID, PROFILE_ID, HOSPITAL_IDS)
    yield db
    db.close()


@pytest.fixture
def book(store):
    """Book for the default doctor/day at a fixed 'now'."""

    def _book(time, patient_id=PATIENT_ID, day=DAY, doctor_id=DOCTOR_ID, **kwargs):
        return booking.book_appointment(
            store, patient_id, doctor_id, day, time, now=kwargs.pop("now", NOW), **kwargs
        )

    return _book
