"""Account and doctor-profile writes that touch more than one table.

Each function commits once, so a failure part way through leaves nothing
half-deleted or half-created.
"""

import logging
from datetime import date

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.passwords import hash_password
from backend.models.appointment import Appointment
from backend.models.availability import Availability
from backend.models.doctor import DoctorProfile
from backend.models.user import User
from backend.services.booking import database_error

logger = logging.getLogger(__name__)

DEFAULT_SPECIALIZATION = "General"
DEFAULT_IMAGES = {
    "doctor": "https://via.placeholder.com/150/4a90e2/ffffff?text=DR",
    "patient": "https://via.placeholder.com/150/007bff/ffffff?text=U",
    "admin": "https://via.placeholder.com/150/007bff/ffffff?text=U",
}


def duplicate_account_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Username or email already exists.",
    )


def find_account_clash(db: Session, username: str | None, email: str | None, exclude_id: int | None = None) -> User | None:
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return None

    query = db.query(User).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first()


def clean_specialization(value: str | None) -> str | None:
    """Strip a submitted specialization. ``None`` means unchanged; blank is rejected."""
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Specialization cannot be blank.",
        )
    return normalized


def get_doctor_profile_for_user(db: Session, user_id: int) -> DoctorProfile | None:
    return db.query(DoctorProfile).filter(DoctorProfile.user_id == user_id).first()


def register_user(
    db: Session,
    username: str,
    email: str,
    password: str,
    role: str,
    specialization: str | None = None,
    name: str | None = None,
    image: str | None = None,
    location: str | None = None,
) -> User:
    if role == "doctor" and not specialization:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Specialization is required for doctor registration.",
        )

    if find_account_clash(db, username, email):
        logger.info("Registration rejected: username or email already exists.")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already exists. Please use a different one.",
        )

    user = User(
        username=username,
        email=email,
        hashed_password=hash_password(password),
        role=role,
        name=name or username,
        image=image or DEFAULT_IMAGES[role],
        location=location or "",
    )

    try:
        db.add(user)
        db.flush()
        if role == "doctor":
            db.add(DoctorProfile(user_id=user.id, specialization=specialization))
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise duplicate_account_error() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_error(exc, "registering the user") from exc

    logger.info("User %s registered with role %s.", user.id, user.role)
    return user


def upsert_availability(db: Session, doctor: DoctorProfile, day: date, slots: list[str]) -> DoctorProfile:
    """Replace the slots published for ``day`` or add a new entry for it."""
    entry = doctor.entry_for(day)
    if entry is None:
        doctor.availability.append(Availability(date=day, slots=list(slots)))
    else:
        entry.slots = list(slots)

    try:
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_error(exc, "updating availability") from exc

    logger.info("Availability for doctor %s on %s set to %d slots.", doctor.id, day, len(slots))
    return doctor


def replace_availability(doctor: DoctorProfile, entries: list[tuple[date, list[str]]]) -> None:
    """Make the published availability exactly ``entries``. Caller commits.

    Entries for dates that stay published are updated in place so the
    (doctor, date) unique constraint never sees two rows for one day.
    """
    wanted: dict[date, list[str]] = {}
    for day, slots in entries:
        wanted[day] = list(slots)

    for entry in list(doctor.availability):
        if entry.date in wanted:
            entry.slots = wanted.pop(entry.date)
        else:
            doctor.availability.remove(entry)

    for day in sorted(wanted):
        doctor.availability.append(Availability(date=day, slots=wanted[day]))


def _delete_profile_dependents(db: Session, doctor: DoctorProfile) -> int:
    removed = db.query(Appointment).filter(Appointment.doctor_id == doctor.id).delete(synchronize_session=False)
    db.delete(doctor)
    return removed


def delete_doctor_cascade(db: Session, profile_id: int) -> None:
    """Delete a doctor profile together with its user.

    The user goes through ``delete_user_cascade``, so appointments the doctor
    holds as a patient are removed along with the ones on the profile.
    """
    doctor = db.get(DoctorProfile, profile_id)
    if doctor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found.",
        )

    delete_user_cascade(db, doctor.user_id)
    logger.info("Doctor profile %s deleted.", profile_id)


def delete_user_cascade(db: Session, user_id: int) -> None:
    """Delete a user with their doctor profile and every appointment they are part of."""
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found.",
        )

    try:
        removed = db.query(Appointment).filter(Appointment.patient_id == user.id).delete(synchronize_session=False)
        doctor = get_doctor_profile_for_user(db, user.id)
        if doctor is not None:
            removed += _delete_profile_dependents(db, doctor)
            db.flush()
        db.delete(user)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_error(exc, "deleting the user") from exc

    logger.info("User %s and %d associated appointments deleted.", user_id, removed)


def drop_doctor_profile(db: Session, user_id: int) -> None:
    """Remove a doctor profile when its user leaves the doctor role. Caller commits."""
    doctor = get_doctor_profile_for_user(db, user_id)
    if doctor is not None:
        _delete_profile_dependents(db, doctor)


def ensure_doctor_profile(db: Session, user: User, specialization: str | None) -> DoctorProfile:
    """Create or update the profile of a doctor user. Caller commits."""
    doctor = get_doctor_profile_for_user(db, user.id)
    if doctor is None:
        doctor = DoctorProfile(user_id=user.id, specialization=specialization or DEFAULT_SPECIALIZATION)
        db.add(doctor)
    elif specialization is not None:
        doctor.specialization = specialization
    return doctor
