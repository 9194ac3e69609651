# app/scripts/seed.py
from datetime import time

from sqlalchemy import select

from app.config import settings
from app.database import SessionLocal, init_db
from app import models

CLINIC = {
    "name": "Riverside Family Clinic",
    "address": "120 Main Street, Springfield",
    "phone": "+1-555-0100",
    "email": "frontdesk@riversideclinic.example",
    "opening_hours": {
        "monday": "09:00-17:00",
        "tuesday": "09:00-17:00",
        "wednesday": "09:00-17:00",
        "thursday": "09:00-17:00",
        "friday": "09:00-13:00",
        "saturday": "closed",
        "sunday": "closed",
    },
}

# name, specialization, fee, bio, weekdays, (start, end)
DOCTORS = [
    ("Dr. Sarah Johnson", "General Practice", 80, "Family medicine and routine check-ups.",
     [0, 1, 2, 3], (time(9, 0), time(17, 0))),
    ("Dr. Michael Chen", "Cardiology", 150, "Heart health and blood pressure.",
     [0, 2, 4], (time(9, 0), time(13, 0))),
    ("Dr. Emily Rodriguez", "Pediatrics", 100, "Children from newborns to teens.",
     [1, 3, 4], (time(10, 0), time(16, 0))),
]


def seed(session_factory=SessionLocal, bind=None) -> int:
    """Loads clinic info, doctors and their weekly schedule. Returns doctors added."""
    init_db(bind=bind)
    added = 0
    db = session_factory()
    try:
        if db.execute(select(models.ClinicInfo)).scalars().first() is None:
            db.add(models.ClinicInfo(**CLINIC))

        for name, spec, fee, bio, weekdays, (start, end) in DOCTORS:
            exists = db.execute(select(models.Doctor).where(models.Doctor.name == name)).scalars().first()
            if exists:
                continue
            doc = models.Doctor(name=name, specialization=spec, consultation_fee=fee, bio=bio)
            doc.schedules = [
                models.DoctorSchedule(
                    weekday=wd, start_time=start, end_time=end,
                    slot_minutes=settings.DEFAULT_SLOT_MINUTES,
                )
                for wd in weekdays
            ]
            db.add(doc)
            added += 1
        db.commit()
    finally:
        db.close()
    return added


if __name__ == "__main__":
    n = seed()
    print(f"Seed complete: {n} doctor(s) added ({settings.DATABASE_URL})")
