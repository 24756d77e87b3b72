"""HTTP surface tests using FastAPI's TestClient with an in-memory store."""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from carebook.main import app
from carebook.store import get_store

from conftest import DOCTOR_ID, PATIENT_ID, PROFILE_ID

# Far enough ahead that the wall clock never makes it a past booking
FUTURE_DAY = "2099-01-15"


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _book(client, time="10:00", patient_id=PATIENT_ID, day=FUTURE_DAY):
    return client.post(
        "/appointments",
        json={"patient_id": patient_id, "doctor_id": DOCTOR_ID, "date": day, "time": time},
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAppointmentRoutes:
    def test_book(self, client):
        response = _book(client, "10:30")

        assert response.status_code == 201
        body = response.json()
        assert body["time"] == "10:30"
        assert body["status"] == "PENDING"
        assert body["civil_day"] == FUTURE_DAY

    def test_missing_fields_is_400(self, client):
        response = client.post("/appointments", json={"doctor_id": DOCTOR_ID})

        assert response.status_code == 400
        assert response.json()["reason"] == "MissingFields"

    def test_duplicate_daily_booking_is_409(self, client):
        _book(client, "10:00")

        response = _book(client, "14:00")

        assert response.status_code == 409
        assert response.json()["reason"] == "DuplicateDailyBooking"

    def test_full_hour_is_409(self, client):
        for patient_id in range(1, 5):
            assert _book(client, "11:00", patient_id=patient_id).status_code == 201

        response = _book(client, "11:00", patient_id=99)

        assert response.status_code == 409
        assert response.json()["reason"] == "HourFullyBooked"

    def test_past_booking_is_400(self, client):
        response = _book(client, "10:00", day="2001-01-01")

        assert response.status_code == 400
        assert response.json()["reason"] == "PastBooking"

    def test_get_and_list(self, client):
        appt_id = _book(client).json()["id"]

        assert client.get(f"/appointments/{appt_id}").json()["id"] == appt_id
        assert [a["id"] for a in client.get(f"/users/{PATIENT_ID}/appointments").json()] == [appt_id]

    def test_unknown_appointment_is_404(self, client):
        response = client.get("/appointments/999")

        assert response.status_code == 404
        assert response.json()["reason"] == "NotFound"

    def test_reschedule(self, client):
        appt_id = _book(client).json()["id"]

        response = client.patch(f"/appointments/{appt_id}", json={"time": "16:45"})

        assert response.status_code == 200
        assert response.json()["time"] == "16:45"

    def test_status_transition(self, client):
        appt_id = _book(client).json()["id"]

        confirmed = client.patch(f"/appointments/{appt_id}/status", json={"status": "CONFIRMED"})
        invalid = client.patch(f"/appointments/{appt_id}/status", json={"status": "PENDING"})

        assert confirmed.json()["status"] == "CONFIRMED"
        assert invalid.status_code == 400
        assert invalid.json()["reason"] == "InvalidStatusTransition"


class TestDoctorRoutes:
    def test_register(self, client):
        response = client.post(
            "/doctors", json={"doctor_id": 42, "profile_id": 420, "hospital_ids": [3]}
        )

        assert response.status_code == 201
        assert response.json()["slot_period_minutes"] == 15

    def test_slot_period(self, client):
        assert client.get(f"/doctors/{DOCTOR_ID}/slot-period").json() == {"slot_period_minutes": 15}

        response = client.patch(f"/doctors/{DOCTOR_ID}/slot-period", json={"minutes": 30})

        assert response.status_code == 200
        assert response.json()["slot_period_minutes"] == 30

    def test_invalid_slot_period_is_400(self, client):
        response = client.patch(f"/doctors/{DOCTOR_ID}/slot-period", json={"minutes": 7})

        assert response.status_code == 400
        assert response.json()["reason"] == "InvalidSlotPeriod"

    def test_availability(self, client):
        _book(client, "09:15")

        reports = client.get(f"/doctors/{DOCTOR_ID}/availability", params={"date": FUTURE_DAY}).json()

        assert len(reports) == 13
        assert reports[0] == {
            "hour": "09",
            "capacity": 4,
            "booked_count": 1,
            "is_full": False,
            "label_from": "09:00",
            "label_to": "10:00",
        }

    def test_availability_bad_date_is_400(self, client):
        response = client.get(f"/doctors/{DOCTOR_ID}/availability", params={"date": "soon"})

        assert response.status_code == 400
        assert response.json()["reason"] == "InvalidTemporalInput"


class TestSlotRoutes:
    def test_publish_list_and_cancel(self, client):
        created = client.post(
            "/slots", json={"doctor_id": DOCTOR_ID, "date": FUTURE_DAY, "time": "13:00"}
        )
        assert created.status_code == 201
        slot_id = created.json()["id"]

        schedule = client.get(f"/doctors/{DOCTOR_ID}/schedule", params={"date": FUTURE_DAY}).json()
        assert schedule["published_slot_times"] == ["13:00"]

        cancelled = client.patch(f"/slots/{slot_id}/cancel", json={"reason": "Ward round"})
        assert cancelled.json()["status"] == "CANCELLED"
        assert cancelled.json()["notes"] == "Ward round"

        listed = client.get(f"/doctors/{DOCTOR_ID}/slots", params={"date": FUTURE_DAY}).json()
        assert [s["status"] for s in listed] == ["CANCELLED"]

        booking = _book(client, "13:00")
        assert booking.status_code == 409
        assert booking.json()["reason"] == "SlotCancelled"

    def test_duplicate_slot_is_409(self, client):
        body = {"doctor_id": DOCTOR_ID, "date": FUTURE_DAY, "time": "13:00"}
        client.post("/slots", json=body)

        response = client.post("/slots", json=body)

        assert response.status_code == 409
        assert response.json()["reason"] == "SlotConflict"


class TestTimeOffRoutes:
    def test_lifecycle(self, client):
        created = client.post(
            "/time-off",
            json={
                "doctor_profile_id": PROFILE_ID,
                "start": f"{FUTURE_DAY}T10:00:00",
                "end": f"{FUTURE_DAY}T12:00:00",
                "reason": "Conference",
            },
        )
        assert created.status_code == 201
        window_id = created.json()["id"]

        blocked = _book(client, "10:30")
        assert blocked.status_code == 409
        assert blocked.json()["reason"] == "BlackoutConflict"

        listed = client.get(f"/doctor-profiles/{PROFILE_ID}/time-off").json()
        assert [w["id"] for w in listed] == [window_id]

        updated = client.patch(f"/time-off/{window_id}", json={"reason": "Training"})
        assert updated.json()["reason"] == "Training"

        assert client.delete(f"/time-off/{window_id}").status_code == 204
        assert client.delete(f"/time-off/{window_id}").status_code == 404
        assert _book(client, "10:30").status_code == 201


class TestStoreFailure:
    def test_store_outage_is_503(self, client, store):
        store.conn.close()

        response = client.get(f"/doctors/{DOCTOR_ID}/availability", params={"date": FUTURE_DAY})

        store.conn = sqlite3.connect(":memory:")
        assert response.status_code == 503
        assert response.json()["reason"] == "StoreUnavailable"
