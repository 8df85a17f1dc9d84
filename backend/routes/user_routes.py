import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal
from backend.auth.passwords import hash_password
from backend.auth.policy import require
from backend.database import get_db
from backend.models.user import ROLES, User
from backend.routes.doctor_routes import AvailabilityEntry
from backend.services import booking, directory

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)


class DoctorProfileSummary(BaseModel):
    id: int
    specialization: str
    availability: list[AvailabilityEntry]

    class Config:
        from_attributes = True


class ProfileResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    name: str | None = None
    image: str | None = None
    location: str | None = None
    doctor_profile: DoctorProfileSummary | None = None


class ProfileUpdateResponse(BaseModel):
    message: str
    updated_user: ProfileResponse


class UpdateProfileRequest(BaseModel):
    username: str | None = None
    email: str | None = None
    name: str | None = None
    location: str | None = None
    image: str | None = None
    password: str | None = None
    specialization: str | None = None

    @field_validator('username')
    @classmethod
    def validate_username(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email is required.')
        return normalized


class AdminUpdateUserRequest(UpdateProfileRequest):
    role: str | None = None

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}.")
        return normalized


def build_profile(db: Session, user: User) -> ProfileResponse:
    doctor = directory.get_doctor_profile_for_user(db, user.id) if user.role == 'doctor' else None
    return ProfileResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        name=user.name,
        image=user.image,
        location=user.location,
        doctor_profile=DoctorProfileSummary.model_validate(doctor) if doctor else None,
    )


def apply_account_changes(db: Session, user: User, data: UpdateProfileRequest) -> None:
    if directory.find_account_clash(db, data.username, data.email, exclude_id=user.id):
        raise directory.duplicate_account_error()

    if data.username:
        user.username = data.username
    if data.email:
        user.email = data.email
    # Empty strings are allowed to clear these fields.
    if data.name is not None:
        user.name = data.name
    if data.location is not None:
        user.location = data.location
    if data.image is not None:
        user.image = data.image
    if data.password:
        user.hashed_password = hash_password(data.password)


def commit_account_changes(db: Session, user: User, action: str) -> None:
    try:
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise directory.duplicate_account_error() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise booking.database_error(exc, action) from exc


@router.get('/me', response_model=ProfileResponse)
def read_my_profile(
    principal: Principal = Depends(require('profile', 'read')),
    db: Session = Depends(get_db),
):
    return build_profile(db, principal.user)


@router.patch('/me', response_model=ProfileUpdateResponse)
def update_my_profile(
    data: UpdateProfileRequest,
    principal: Principal = Depends(require('profile', 'update')),
    db: Session = Depends(get_db),
):
    user = principal.user
    specialization = directory.clean_specialization(data.specialization)
    apply_account_changes(db, user, data)

    if user.role == 'doctor' and specialization is not None:
        doctor = directory.get_doctor_profile_for_user(db, user.id)
        if doctor is not None:
            doctor.specialization = specialization

    commit_account_changes(db, user, 'updating the profile')
    logger.info('User %s updated their profile.', user.id)

    return ProfileUpdateResponse(message='Profile updated successfully.', updated_user=build_profile(db, user))


@router.get('', response_model=list[ProfileResponse])
def list_users(
    principal: Principal = Depends(require('users', 'list')),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.id.asc()).all()
    if not users:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No users found')
    return [build_profile(db, user) for user in users]


@router.patch('/{user_id}', response_model=ProfileUpdateResponse)
def update_user(
    user_id: int,
    data: AdminUpdateUserRequest,
    principal: Principal = Depends(require('users', 'update')),
    db: Session = Depends(get_db),
):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User not found.')

    specialization = directory.clean_specialization(data.specialization)
    apply_account_changes(db, user, data)
    if data.role is not None:
        user.role = data.role

    if user.role == 'doctor':
        directory.ensure_doctor_profile(db, user, specialization)
    else:
        directory.drop_doctor_profile(db, user.id)

    commit_account_changes(db, user, 'updating the user')
    logger.info('Admin %s updated user %s.', principal.id, user.id)

    return ProfileUpdateResponse(message='User updated successfully.', updated_user=build_profile(db, user))


@router.delete('/{user_id}')
def delete_user(
    user_id: int,
    principal: Principal = Depends(require('users', 'delete')),
    db: Session = Depends(get_db),
):
    directory.delete_user_cascade(db, user_id)
    return {'message': 'User deleted successfully'}
