"""Appointment booking, cancellation and status transitions.

A booking is accepted only when the doctor has published the requested
(date, time label) slot and no non-cancelled appointment already holds it.
Availability entries are templates: booking never consumes them, so a slot
freed by a cancellation can be booked again straight away.

The availability check and the insert run in one transaction that holds a
row lock on the doctor profile, so concurrent bookings for the same doctor
are serialized on databases with row-level locking. SQLite has no
``FOR UPDATE`` and relies on its single-writer lock instead.
"""

import calendar
import logging
import re
from datetime import date, datetime, time, timedelta

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import policy
from backend.auth.dependencies import Principal
from backend.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_BOOKED,
    STATUS_CANCELLED,
    Appointment,
)
from backend.models.doctor import DoctorProfile

logger = logging.getLogger(__name__)

BOOKING_WINDOW_MONTHS = 6
CANCELLATION_CUTOFF = timedelta(hours=24)
TIME_LABEL_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})")


def database_error(exc: SQLAlchemyError, action: str) -> HTTPException:
    logger.exception("Database error while %s.", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Database error while {action}.",
    )


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def latest_bookable_date(today: date) -> date:
    return add_months(today, BOOKING_WINDOW_MONTHS)


def validate_booking_date(requested_date: date, today: date) -> None:
    if requested_date < today:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot book appointments in the past.',
        )

    if requested_date > latest_bookable_date(today):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot book appointments more than {BOOKING_WINDOW_MONTHS} months in advance.',
        )


def parse_time_label(time_label: str) -> time:
    """Read the hour and minute from a label such as ``"09:30"``.

    Labels that do not start with ``H:MM`` resolve to midnight.
    """
    match = TIME_LABEL_PATTERN.match(time_label or '')
    if not match:
        return time(0, 0)

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return time(0, 0)
    return time(hour, minute)


def appointment_start(appointment: Appointment) -> datetime:
    return datetime.combine(appointment.date, parse_time_label(appointment.time))


def is_slot_published(doctor: DoctorProfile, requested_date: date, time_label: str) -> bool:
    entry = doctor.entry_for(requested_date)
    return entry is not None and entry.has_slot(time_label)


def occupying_appointments_query(db: Session, doctor_id: int, requested_date: date):
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == requested_date,
        Appointment.status != STATUS_CANCELLED,
    )


def find_conflicting_appointment(
    db: Session,
    doctor_id: int,
    requested_date: date,
    time_label: str,
) -> Appointment | None:
    return occupying_appointments_query(db, doctor_id, requested_date).filter(
        Appointment.time == time_label,
    ).first()


def list_open_slots(db: Session, doctor: DoctorProfile, requested_date: date) -> list[str]:
    entry = doctor.entry_for(requested_date)
    if entry is None:
        return []

    taken = {
        appointment.time
        for appointment in occupying_appointments_query(db, doctor.id, requested_date).all()
    }
    return [label for label in entry.slots if label not in taken]


def book_appointment(
    db: Session,
    principal: Principal,
    doctor_user_id: int,
    requested_date: date,
    time_label: str,
    notes: str | None = None,
    symptoms: str | None = None,
    signs: str | None = None,
    duration_minutes: int | None = None,
    now: datetime | None = None,
) -> Appointment:
    today = (now or datetime.now()).date()

    try:
        doctor = db.query(DoctorProfile).filter(
            DoctorProfile.user_id == doctor_user_id,
        ).with_for_update(of=DoctorProfile).first()

        if doctor is None:
            logger.info('Doctor profile not found for user_id: %s', doctor_user_id)
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        if not policy.is_allowed(principal.role, 'appointments', 'book'):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only patients can book appointments.',
            )

        validate_booking_date(requested_date, today)

        if not is_slot_published(doctor, requested_date, time_label):
            logger.info('Slot %s %s is not in the schedule of doctor %s.', requested_date, time_label, doctor.id)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Selected slot is not available.',
            )

        if find_conflicting_appointment(db, doctor.id, requested_date, time_label):
            logger.info('Slot %s %s already booked for doctor %s.', requested_date, time_label, doctor.id)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Slot already booked by another patient.',
            )

        appointment = Appointment(
            doctor_id=doctor.id,
            patient_id=principal.id,
            date=requested_date,
            time=time_label,
            duration_minutes=duration_minutes,
            notes=notes,
            symptoms=symptoms,
            signs=signs,
            status=STATUS_BOOKED,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except HTTPException:
        # Releases the doctor row lock.
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_error(exc, 'booking the appointment') from exc

    logger.info('New appointment %s booked with doctor %s.', appointment.id, doctor.id)
    return appointment


def can_cancel(db: Session, principal: Principal, appointment: Appointment) -> bool:
    if principal.role == 'admin':
        return True
    if principal.role == 'patient':
        return appointment.patient_id == principal.id
    if principal.role == 'doctor':
        doctor = db.query(DoctorProfile).filter(DoctorProfile.user_id == principal.id).first()
        return doctor is not None and appointment.doctor_id == doctor.id
    return False


def cancel_appointment(
    db: Session,
    principal: Principal,
    appointment_id: int,
    now: datetime | None = None,
) -> Appointment:
    now = now or datetime.now()

    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )

    if not can_cancel(db, principal, appointment):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Unauthorized to cancel this appointment.',
        )

    if appointment.status == STATUS_CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointment already cancelled.',
        )

    if appointment_start(appointment) - now < CANCELLATION_CUTOFF:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot cancel within 24 hours of appointment.',
        )

    try:
        appointment.status = STATUS_CANCELLED
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_error(exc, 'cancelling the appointment') from exc

    logger.info('Appointment %s cancelled by user %s.', appointment.id, principal.id)
    return appointment


def set_appointment_status(db: Session, appointment_id: int, new_status: str | None) -> Appointment:
    """Apply an admin status change.

    No cancellation window and no slot conflict check apply here, so
    re-activating a cancelled appointment can double-book its slot.
    """
    if new_status not in APPOINTMENT_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid or missing appointment status.',
        )

    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )

    try:
        appointment.status = new_status
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_error(exc, 'updating the appointment status') from exc

    logger.info('Appointment %s status set to %s.', appointment.id, new_status)
    return appointment
