"""Reset the database and load demo accounts, doctors and appointments.

Usage:
    python -m backend.seed [--keep]

Availability and appointment dates are relative to today so the demo
data stays bookable.
"""
import argparse
import logging
import sys
from datetime import date, timedelta

from sqlalchemy.exc import SQLAlchemyError

from backend.auth.passwords import hash_password
from backend.database import SessionLocal, create_tables, drop_tables
from backend.models.appointment import STATUS_BOOKED, STATUS_COMPLETED, STATUS_PENDING, Appointment
from backend.models.availability import Availability
from backend.models.doctor import DoctorProfile
from backend.models.user import User

logger = logging.getLogger(__name__)

USERS = [
    ("patient_alice", "alice@example.com", "patientpass", "patient", "Alice Walker"),
    ("patient_bob", "bob@example.com", "patientpass2", "patient", "Bob Stone"),
    ("dr_john", "john.doe@example.com", "doctorpass", "doctor", "John Doe"),
    ("dr_mary", "mary.smith@example.com", "doctorpass2", "doctor", "Mary Smith"),
    ("admin", "admin@example.com", "adminpass", "admin", "Administrator"),
]

DOCTORS = {
    "dr_john": ("Pediatrics", [(7, ["09:00", "10:00", "11:00"]), (8, ["13:00", "14:00"])]),
    "dr_mary": ("Dermatology", [(9, ["09:30", "10:30"]), (10, ["14:00"])]),
}


def seed(today: date) -> None:
    db = SessionLocal()
    try:
        users = {}
        for username, email, password, role, name in USERS:
            user = User(
                username=username,
                email=email,
                hashed_password=hash_password(password),
                role=role,
                name=name,
                location="",
            )
            db.add(user)
            users[username] = user
        db.flush()

        doctors = {}
        for username, (specialization, schedule) in DOCTORS.items():
            doctor = DoctorProfile(
                user_id=users[username].id,
                specialization=specialization,
                availability=[
                    Availability(date=today + timedelta(days=offset), slots=slots)
                    for offset, slots in schedule
                ],
            )
            db.add(doctor)
            doctors[username] = doctor
        db.flush()

        db.add_all([
            Appointment(
                doctor_id=doctors["dr_john"].id,
                patient_id=users["patient_alice"].id,
                date=today + timedelta(days=7),
                time="10:00",
                duration_minutes=30,
                notes="First check-up for child.",
                status=STATUS_BOOKED,
            ),
            Appointment(
                doctor_id=doctors["dr_mary"].id,
                patient_id=users["patient_alice"].id,
                date=today + timedelta(days=9),
                time="09:30",
                duration_minutes=20,
                notes="Skin rash consultation.",
                status=STATUS_PENDING,
            ),
            Appointment(
                doctor_id=doctors["dr_john"].id,
                patient_id=users["patient_bob"].id,
                date=today - timedelta(days=3),
                time="13:00",
                duration_minutes=15,
                notes="Vaccination follow-up.",
                status=STATUS_COMPLETED,
            ),
        ])
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--keep", action="store_true", help="do not drop existing tables first")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    try:
        if not args.keep:
            logger.info("Dropping existing tables...")
            drop_tables()
        create_tables()
        seed(date.today())
    except SQLAlchemyError:
        logger.exception("Seeding failed.")
        sys.exit(1)

    logger.info("Database seeded successfully.")


if __name__ == "__main__":
    main()
