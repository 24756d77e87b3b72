#!/usr/bin/env python3
"""
Seed demo doctors, hospital memberships and a few published slots.

Run once against the configured database:
    python scripts/seed_doctors.py [YYYY-MM-DD]

The optional date (default: tomorrow in civil time) is the day slots are
published for.
"""

import os
import sys
from datetime import timedelta

# Allow running from repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from dotenv import load_dotenv
load_dotenv()

from carebook import booking
from carebook.civil_time import civil_tz, now_utc
from carebook.config import settings
from carebook.errors import SlotConflict
from carebook.store import get_store

# (doctor_id, profile_id, slot period, hospital ids)
DOCTORS = [
    (101, 1, 15, [1]),
    (102, 2, 30, [1, 2]),
    (103, 3, 20, [2]),
]

SLOT_TIMES = ["10:00", "10:15", "10:30", "11:00", "14:00", "14:30"]


def main():
    day = sys.argv[1] if len(sys.argv) > 1 else (
        now_utc().astimezone(civil_tz()) + timedelta(days=1)
    ).date().isoformat()

    store = get_store()
    print(f"Seeding {settings.database_path} for {day}\n")

    for doctor_id, profile_id, period, hospitals in DOCTORS:
        booking.register_doctor(store, doctor_id, profile_id, hospitals)
        booking.set_doctor_slot_period(store, doctor_id, period)
        published = 0
        for time in SLOT_TIMES:
            try:
                booking.publish_slot(store, doctor_id, day, time)
                published += 1
            except SlotConflict:
                pass
        print(f"✓ Doctor {doctor_id}: {period}-min slots, hospitals {hospitals}, {published} new slots")


if __name__ == "__main__":
    main()
