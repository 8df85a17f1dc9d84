from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, BeforeValidator, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal
from backend.auth.policy import require
from backend.database import get_db
from backend.models.doctor import DoctorProfile
from backend.models.user import User
from backend.services import booking, directory

router = APIRouter(tags=['doctors'])

MAX_SLOTS_PER_DAY = 96


def coerce_calendar_day(value):
    """Keep only the calendar day of ISO datetime strings and datetimes."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and 'T' in value:
        return value.split('T', 1)[0]
    return value


CalendarDay = Annotated[date, BeforeValidator(coerce_calendar_day)]


class AvailabilityEntry(BaseModel):
    date: CalendarDay
    slots: list[str]

    @field_validator('slots')
    @classmethod
    def validate_slots(cls, value: list[str]) -> list[str]:
        labels: list[str] = []
        for label in value:
            normalized = label.strip()
            if not normalized:
                raise ValueError('Slot labels cannot be blank.')
            if normalized not in labels:
                labels.append(normalized)

        if len(labels) > MAX_SLOTS_PER_DAY:
            raise ValueError(f'At most {MAX_SLOTS_PER_DAY} slots can be published per day.')

        return labels

    class Config:
        from_attributes = True


class DoctorUserResponse(BaseModel):
    id: int
    username: str
    email: str
    name: str | None = None
    image: str | None = None
    location: str | None = None

    class Config:
        from_attributes = True


class DoctorResponse(BaseModel):
    id: int
    user_id: int
    specialization: str
    availability: list[AvailabilityEntry]
    user: DoctorUserResponse

    class Config:
        from_attributes = True


class CreateDoctorRequest(BaseModel):
    user_id: int
    specialization: str
    availability: list[AvailabilityEntry] = []

    @field_validator('specialization')
    @classmethod
    def validate_specialization(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Specialization is required.')
        return normalized


class UpdateDoctorRequest(BaseModel):
    specialization: str | None = None
    availability: list[AvailabilityEntry] | None = None


class OpenSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slots: list[str]


def load_managed_profile(db: Session, principal: Principal, profile_id: int, what: str) -> DoctorProfile:
    doctor = db.get(DoctorProfile, profile_id)

    if principal.role == 'doctor' and (doctor is None or doctor.user_id != principal.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f'Forbidden: You can only update your own {what}',
        )

    if doctor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor profile not found.',
        )

    return doctor


@router.get('', response_model=list[DoctorResponse])
def list_doctors(
    specialization: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    query = db.query(DoctorProfile).join(DoctorProfile.user)

    if specialization and specialization.strip():
        query = query.filter(DoctorProfile.specialization.ilike(f'%{specialization.strip()}%'))

    if search and search.strip():
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(User.username.ilike(pattern), User.name.ilike(pattern)))

    return query.order_by(DoctorProfile.id.asc()).all()


@router.get('/{doctor_user_id}/slots', response_model=OpenSlotsResponse)
def list_open_slots(
    doctor_user_id: int,
    slot_date: date = Query(alias='date'),
    db: Session = Depends(get_db),
):
    doctor = db.query(DoctorProfile).filter(DoctorProfile.user_id == doctor_user_id).first()
    if doctor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Doctor not found.',
        )

    return OpenSlotsResponse(
        doctor_id=doctor.id,
        date=slot_date,
        slots=booking.list_open_slots(db, doctor, slot_date),
    )


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: CreateDoctorRequest,
    principal: Principal = Depends(require('doctors', 'create')),
    db: Session = Depends(get_db),
):
    user = db.get(User, data.user_id)
    if user is None or user.role != 'doctor':
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid user_id or user is not a doctor.',
        )

    if directory.get_doctor_profile_for_user(db, user.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Doctor profile already exists for this user.',
        )

    doctor = DoctorProfile(user_id=user.id, specialization=data.specialization)
    directory.replace_availability(doctor, [(entry.date, entry.slots) for entry in data.availability])

    try:
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Doctor profile already exists for this user.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise booking.database_error(exc, 'creating the doctor profile') from exc

    return doctor


@router.patch('/{profile_id}', response_model=DoctorResponse)
def update_doctor(
    profile_id: int,
    data: UpdateDoctorRequest,
    principal: Principal = Depends(require('doctors', 'update')),
    db: Session = Depends(get_db),
):
    doctor = load_managed_profile(db, principal, profile_id, 'doctor profile')

    specialization = directory.clean_specialization(data.specialization)
    if specialization is not None:
        doctor.specialization = specialization

    if data.availability is not None:
        directory.replace_availability(doctor, [(entry.date, entry.slots) for entry in data.availability])

    try:
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError as exc:
        db.rollback()
        raise booking.database_error(exc, 'updating the doctor profile') from exc

    return doctor


@router.patch('/{profile_id}/availability', response_model=DoctorResponse)
def update_availability(
    profile_id: int,
    data: AvailabilityEntry,
    principal: Principal = Depends(require('availability', 'update')),
    db: Session = Depends(get_db),
):
    doctor = load_managed_profile(db, principal, profile_id, 'availability')
    return directory.upsert_availability(db, doctor, data.date, data.slots)


@router.delete('/{profile_id}')
def delete_doctor(
    profile_id: int,
    principal: Principal = Depends(require('doctors', 'delete')),
    db: Session = Depends(get_db),
):
    directory.delete_doctor_cascade(db, profile_id)
    return {'message': 'Doctor deleted successfully'}
