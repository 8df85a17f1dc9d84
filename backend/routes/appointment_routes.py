from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal, get_current_principal
from backend.auth.policy import require
from backend.database import get_db
from backend.models.appointment import STATUS_CANCELLED, Appointment
from backend.routes.doctor_routes import CalendarDay
from backend.services import booking, directory

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_TEXT_LENGTH = 2000
MAX_DURATION_MINUTES = 8 * 60


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    date: CalendarDay
    time: str
    duration: int | None = None
    notes: str | None = None
    symptoms: str | None = None
    signs: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Time is required.')
        return normalized

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is None:
            return None
        if value <= 0 or value > MAX_DURATION_MINUTES:
            raise ValueError(f'Duration must be between 1 and {MAX_DURATION_MINUTES} minutes.')
        return value

    @field_validator('notes', 'symptoms', 'signs')
    @classmethod
    def validate_text(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_TEXT_LENGTH:
            raise ValueError(f'Must be {MAX_APPOINTMENT_TEXT_LENGTH} characters or fewer.')

        return normalized


class AppointmentDoctorSummary(BaseModel):
    id: int
    user_id: int
    specialization: str
    name: str | None = None
    image: str | None = None
    location: str | None = None


class AppointmentPatientSummary(BaseModel):
    id: int
    username: str
    name: str | None = None
    email: str


class AppointmentResponse(BaseModel):
    id: int
    doctor: AppointmentDoctorSummary
    patient: AppointmentPatientSummary
    date: date
    time: str
    duration: int | None = None
    status: str
    notes: str | None = None
    symptoms: str | None = None
    signs: str | None = None


class CancelAppointmentResponse(BaseModel):
    message: str
    updated_appointment: AppointmentResponse


def to_response(appointment: Appointment) -> AppointmentResponse:
    doctor = appointment.doctor
    patient = appointment.patient
    return AppointmentResponse(
        id=appointment.id,
        doctor=AppointmentDoctorSummary(
            id=doctor.id,
            user_id=doctor.user_id,
            specialization=doctor.specialization,
            name=doctor.user.name or doctor.user.username,
            image=doctor.user.image,
            location=doctor.user.location,
        ),
        patient=AppointmentPatientSummary(
            id=patient.id,
            username=patient.username,
            name=patient.name,
            email=patient.email,
        ),
        date=appointment.date,
        time=appointment.time,
        duration=appointment.duration_minutes,
        status=appointment.status,
        notes=appointment.notes,
        symptoms=appointment.symptoms,
        signs=appointment.signs,
    )


def chronological(appointments: list[Appointment]) -> list[Appointment]:
    return sorted(appointments, key=lambda appointment: (appointment.date, appointment.time))


def own_appointments_query(db: Session, principal: Principal):
    if principal.role == 'patient':
        return db.query(Appointment).filter(Appointment.patient_id == principal.id)

    doctor = directory.get_doctor_profile_for_user(db, principal.id)
    if doctor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor profile not found for this user.',
        )
    return db.query(Appointment).filter(Appointment.doctor_id == doctor.id)


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    appointment = booking.book_appointment(
        db,
        principal,
        doctor_user_id=data.doctor_id,
        requested_date=data.date,
        time_label=data.time,
        notes=data.notes,
        symptoms=data.symptoms,
        signs=data.signs,
        duration_minutes=data.duration,
    )
    return to_response(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    principal: Principal = Depends(require('appointments', 'list_own')),
    db: Session = Depends(get_db),
):
    appointments = own_appointments_query(db, principal).all()
    return [to_response(appointment) for appointment in chronological(appointments)]


@router.get('/upcoming', response_model=list[AppointmentResponse])
def list_upcoming_appointments(
    principal: Principal = Depends(require('appointments', 'list_own')),
    db: Session = Depends(get_db),
):
    appointments = own_appointments_query(db, principal).filter(
        Appointment.date >= datetime.now().date(),
        Appointment.status != STATUS_CANCELLED,
    ).all()
    return [to_response(appointment) for appointment in chronological(appointments)]


@router.patch('/{appointment_id}/cancel', response_model=CancelAppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    principal: Principal = Depends(require('appointments', 'cancel')),
    db: Session = Depends(get_db),
):
    appointment = booking.cancel_appointment(db, principal, appointment_id)
    return CancelAppointmentResponse(
        message='Appointment cancelled successfully',
        updated_appointment=to_response(appointment),
    )
