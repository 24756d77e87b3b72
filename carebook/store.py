"""
Relational store for the scheduling engine (SQLite).

The store is the single source of truth for the final accept/reject
decision: a partial unique index allows at most one non-cancelled
appointment per (doctor, civil day, time), and every write unit runs
inside ``BEGIN IMMEDIATE`` so concurrent writers are serialised.

Constraint violations on that index surface as ``SlotConflict``; every
other sqlite failure surfaces as ``StoreUnavailable``.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from carebook.civil_time import from_utc_iso, to_utc_iso
from carebook.config import settings
from carebook.errors import SlotConflict, StoreUnavailable
from carebook.models import (
    Appointment,
    AppointmentStatus,
    DoctorSchedule,
    PublishedSlot,
    SlotStatus,
    TimeOffWindow,
)

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS doctors (
        doctor_id INTEGER PRIMARY KEY,
        profile_id INTEGER NOT NULL UNIQUE,
        slot_period_minutes INTEGER NOT NULL DEFAULT 15
    );

    CREATE TABLE IF NOT EXISTS hospital_doctors (
        hospital_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL REFERENCES doctors(doctor_id) ON DELETE CASCADE,
        UNIQUE (hospital_id, doctor_id)
    );

    CREATE TABLE IF NOT EXISTS slots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        doctor_id INTEGER NOT NULL,
        civil_day TEXT NOT NULL,
        time TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'AVAILABLE'
            CHECK (status IN ('AVAILABLE', 'BOOKED', 'CANCELLED')),
        notes TEXT NOT NULL DEFAULT '',
        UNIQUE (doctor_id, civil_day, time)
    );
    CREATE INDEX IF NOT EXISTS idx_slots_doctor_day_status
        ON slots(doctor_id, civil_day, status);

    CREATE TABLE IF NOT EXISTS appointments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        doctor_id INTEGER NOT NULL,
        patient_id INTEGER NOT NULL,
        civil_day TEXT NOT NULL,
        time TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING'
            CHECK (status IN ('PENDING', 'CONFIRMED', 'CANCELLED', 'COMPLETED')),
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot
        ON appointments(doctor_id, civil_day, time) WHERE status <> 'CANCELLED';
    CREATE INDEX IF NOT EXISTS idx_appointments_patient_doctor_day
        ON appointments(patient_id, doctor_id, civil_day);

    CREATE TABLE IF NOT EXISTS time_off (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        doctor_profile_id INTEGER NOT NULL,
        start_at TEXT NOT NULL,
        end_at TEXT NOT NULL,
        reason TEXT NOT NULL DEFAULT ''
    );
    CREATE INDEX IF NOT EXISTS idx_time_off_profile ON time_off(doctor_profile_id);
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _slot_from_row(row: sqlite3.Row) -> PublishedSlot:
    return PublishedSlot(
        id=row["id"],
        doctor_id=row["doctor_id"],
        civil_day=row["civil_day"],
        time=row["time"],
        status=SlotStatus(row["status"]),
        notes=row["notes"],
    )


def _appointment_from_row(row: sqlite3.Row) -> Appointment:
    return Appointment(
        id=row["id"],
        doctor_id=row["doctor_id"],
        patient_id=row["patient_id"],
        civil_day=row["civil_day"],
        time=row["time"],
        status=AppointmentStatus(row["status"]),
        notes=row["notes"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _time_off_from_row(row: sqlite3.Row) -> TimeOffWindow:
    return TimeOffWindow(
        id=row["id"],
        doctor_profile_id=row["doctor_profile_id"],
        start=from_utc_iso(row["start_at"]),
        end=from_utc_iso(row["end_at"]),
        reason=row["reason"],
    )


class BookingStore:
    """SQLite-backed store with single-writer transactions."""

    def __init__(self, db_path: str | None = None):
        """Open the database.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
                     Defaults to ``settings.database_path``.
        """
        self.db_path = db_path or settings.database_path
        try:
            self.conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open {self.db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    def init_schema(self) -> None:
        with self._lock:
            try:
                self.conn.executescript(SCHEMA)
            except sqlite3.Error as exc:
                raise StoreUnavailable(str(exc)) from exc

    def close(self) -> None:
        self.conn.close()

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self.conn.execute(sql, params)
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                logger.error("Store failure on %r: %s", sql.split()[0], exc)
                raise StoreUnavailable(str(exc)) from exc

    @contextmanager
    def transaction(self) -> Iterator["BookingStore"]:
        """Run a write unit: commit on normal exit, roll back on any exception."""
        with self._lock:
            self._execute("BEGIN IMMEDIATE")
            try:
                yield self
                self._execute("COMMIT")
            except BaseException:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise

    # =========================================================================
    # Doctors
    # =========================================================================

    def upsert_doctor(self, doctor_id: int, profile_id: int) -> DoctorSchedule:
        self._execute(
            """INSERT INTO doctors (doctor_id, profile_id, slot_period_minutes)
               VALUES (?, ?, ?)
               ON CONFLICT(doctor_id) DO UPDATE SET profile_id = excluded.profile_id""",
            (doctor_id, profile_id, settings.default_slot_period_minutes),
        )
        return self.get_doctor(doctor_id)  # type: ignore[return-value]

    def get_doctor(self, doctor_id: int) -> DoctorSchedule | None:
        row = self._execute(
            "SELECT * FROM doctors WHERE doctor_id = ?", (doctor_id,)
        ).fetchone()
        if row is None:
            return None
        return DoctorSchedule(
            doctor_id=row["doctor_id"],
            profile_id=row["profile_id"],
            slot_period_minutes=row["slot_period_minutes"],
        )

    def set_slot_period(self, doctor_id: int, minutes: int) -> bool:
        cursor = self._execute(
            "UPDATE doctors SET slot_period_minutes = ? WHERE doctor_id = ?",
            (minutes, doctor_id),
        )
        return cursor.rowcount > 0

    def add_hospital_membership(self, hospital_id: int, doctor_id: int) -> None:
        self._execute(
            "INSERT OR IGNORE INTO hospital_doctors (hospital_id, doctor_id) VALUES (?, ?)",
            (hospital_id, doctor_id),
        )

    def hospital_ids_for_doctor(self, doctor_id: int) -> list[int]:
        rows = self._execute(
            "SELECT hospital_id FROM hospital_doctors WHERE doctor_id = ? ORDER BY hospital_id",
            (doctor_id,),
        ).fetchall()
        return [row["hospital_id"] for row in rows]

    # =========================================================================
    # Published slots
    # =========================================================================

    def insert_slot(self, doctor_id: int, civil_day: str, time: str) -> PublishedSlot:
        try:
            cursor = self._execute(
                "INSERT INTO slots (doctor_id, civil_day, time, status) VALUES (?, ?, ?, 'AVAILABLE')",
                (doctor_id, civil_day, time),
            )
        except sqlite3.IntegrityError as exc:
            raise SlotConflict(
                f"A slot at {time} on {civil_day} is already published for doctor {doctor_id}."
            ) from exc
        return self.get_slot(cursor.lastrowid)  # type: ignore[return-value]

    def get_slot(self, slot_id: int) -> PublishedSlot | None:
        row = self._execute("SELECT * FROM slots WHERE id = ?", (slot_id,)).fetchone()
        return _slot_from_row(row) if row else None

    def find_slot(self, doctor_id: int, civil_day: str, time: str) -> PublishedSlot | None:
        row = self._execute(
            "SELECT * FROM slots WHERE doctor_id = ? AND civil_day = ? AND time = ?",
            (doctor_id, civil_day, time),
        ).fetchone()
        return _slot_from_row(row) if row else None

    def list_slots(
        self,
        doctor_id: int,
        civil_day: Optional[str] = None,
        status: Optional[SlotStatus] = None,
    ) -> list[PublishedSlot]:
        query = "SELECT * FROM slots WHERE doctor_id = ?"
        params: list = [doctor_id]
        if civil_day:
            query += " AND civil_day = ?"
            params.append(civil_day)
        if status:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY civil_day, time"
        rows = self._execute(query, tuple(params)).fetchall()
        return [_slot_from_row(row) for row in rows]

    def transition_slot(
        self,
        slot_id: int,
        new_status: SlotStatus,
        expected: Optional[SlotStatus] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """Move a slot to ``new_status``; when ``expected`` is given the update
        only applies if the slot is still in that status."""
        query = "UPDATE slots SET status = ?"
        params: list = [new_status.value]
        if notes is not None:
            query += ", notes = ?"
            params.append(notes)
        query += " WHERE id = ?"
        params.append(slot_id)
        if expected is not None:
            query += " AND status = ?"
            params.append(expected.value)
        cursor = self._execute(query, tuple(params))
        return cursor.rowcount > 0

    # =========================================================================
    # Appointments
    # =========================================================================

    def insert_appointment(
        self,
        doctor_id: int,
        patient_id: int,
        civil_day: str,
        time: str,
        notes: str = "",
        status: AppointmentStatus = AppointmentStatus.PENDING,
    ) -> Appointment:
        now = _now_iso()
        try:
            cursor = self._execute(
                """INSERT INTO appointments
                   (doctor_id, patient_id, civil_day, time, status, notes, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (doctor_id, patient_id, civil_day, time, status.value, notes, now, now),
            )
        except sqlite3.IntegrityError as exc:
            raise SlotConflict(f"{time} on {civil_day} was just taken.") from exc
        return self.get_appointment(cursor.lastrowid)  # type: ignore[return-value]

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        row = self._execute(
            "SELECT * FROM appointments WHERE id = ?", (appointment_id,)
        ).fetchone()
        return _appointment_from_row(row) if row else None

    def update_appointment(
        self,
        appointment_id: int,
        civil_day: str,
        time: str,
        status: AppointmentStatus,
    ) -> Appointment:
        try:
            self._execute(
                """UPDATE appointments
                   SET civil_day = ?, time = ?, status = ?, updated_at = ?
                   WHERE id = ?""",
                (civil_day, time, status.value, _now_iso(), appointment_id),
            )
        except sqlite3.IntegrityError as exc:
            raise SlotConflict(f"{time} on {civil_day} was just taken.") from exc
        return self.get_appointment(appointment_id)  # type: ignore[return-value]

    def taken_times(
        self,
        doctor_id: int,
        civil_day: str,
        exclude_id: Optional[int] = None,
    ) -> set[str]:
        """Times held by non-cancelled appointments for the doctor's day."""
        rows = self._execute(
            """SELECT id, time FROM appointments
               WHERE doctor_id = ? AND civil_day = ? AND status <> 'CANCELLED'""",
            (doctor_id, civil_day),
        ).fetchall()
        return {row["time"] for row in rows if row["id"] != exclude_id}

    def conflict_exists(
        self,
        doctor_id: int,
        civil_day: str,
        time: str,
        exclude_id: Optional[int] = None,
    ) -> bool:
        row = self._execute(
            """SELECT id FROM appointments
               WHERE doctor_id = ? AND civil_day = ? AND time = ?
                 AND status <> 'CANCELLED' AND id <> ?""",
            (doctor_id, civil_day, time, exclude_id if exclude_id is not None else -1),
        ).fetchone()
        return row is not None

    def has_daily_booking(
        self,
        patient_id: int,
        doctor_id: int,
        civil_day: str,
        exclude_id: Optional[int] = None,
    ) -> bool:
        row = self._execute(
            """SELECT id FROM appointments
               WHERE patient_id = ? AND doctor_id = ? AND civil_day = ?
                 AND status <> 'CANCELLED' AND id <> ?""",
            (patient_id, doctor_id, civil_day, exclude_id if exclude_id is not None else -1),
        ).fetchone()
        return row is not None

    def list_appointments_for_user(self, user_id: int) -> list[Appointment]:
        rows = self._execute(
            """SELECT * FROM appointments
               WHERE patient_id = ? OR doctor_id = ?
               ORDER BY civil_day, time, id""",
            (user_id, user_id),
        ).fetchall()
        return [_appointment_from_row(row) for row in rows]

    # =========================================================================
    # Time off
    # =========================================================================

    def insert_time_off(
        self,
        doctor_profile_id: int,
        start: datetime,
        end: datetime,
        reason: str = "",
    ) -> TimeOffWindow:
        cursor = self._execute(
            "INSERT INTO time_off (doctor_profile_id, start_at, end_at, reason) VALUES (?, ?, ?, ?)",
            (doctor_profile_id, to_utc_iso(start), to_utc_iso(end), reason),
        )
        return self.get_time_off(cursor.lastrowid)  # type: ignore[return-value]

    def get_time_off(self, time_off_id: int) -> TimeOffWindow | None:
        row = self._execute("SELECT * FROM time_off WHERE id = ?", (time_off_id,)).fetchone()
        return _time_off_from_row(row) if row else None

    def list_time_off(self, doctor_profile_id: int) -> list[TimeOffWindow]:
        rows = self._execute(
            "SELECT * FROM time_off WHERE doctor_profile_id = ? ORDER BY start_at",
            (doctor_profile_id,),
        ).fetchall()
        return [_time_off_from_row(row) for row in rows]

    def update_time_off(
        self,
        time_off_id: int,
        start: datetime,
        end: datetime,
        reason: str,
    ) -> TimeOffWindow | None:
        self._execute(
            "UPDATE time_off SET start_at = ?, end_at = ?, reason = ? WHERE id = ?",
            (to_utc_iso(start), to_utc_iso(end), reason, time_off_id),
        )
        return self.get_time_off(time_off_id)

    def delete_time_off(self, time_off_id: int) -> bool:
        cursor = self._execute("DELETE FROM time_off WHERE id = ?", (time_off_id,))
        return cursor.rowcount > 0


# Process-wide store used by the HTTP routes
_store: BookingStore | None = None


def get_store() -> BookingStore:
    """Get or create the shared store."""
    global _store
    if _store is None:
        _store = BookingStore()
        _store.init_schema()
    return _store
