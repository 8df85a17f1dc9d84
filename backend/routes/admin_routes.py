import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import Principal
from backend.auth.policy import require
from backend.database import get_db
from backend.models.appointment import STATUS_PENDING, Appointment
from backend.models.doctor import DoctorProfile
from backend.models.user import User
from backend.routes.appointment_routes import AppointmentResponse, chronological, to_response
from backend.services import booking

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)


class SummaryResponse(BaseModel):
    total_users: int
    total_doctors: int
    total_appointments: int
    pending_appointments: int


class UpdateStatusRequest(BaseModel):
    status: str | None = None


class UpdateStatusResponse(BaseModel):
    message: str
    updated_appointment: AppointmentResponse


@router.get('/summary', response_model=SummaryResponse)
def read_summary(
    principal: Principal = Depends(require('admin', 'summary')),
    db: Session = Depends(get_db),
):
    return SummaryResponse(
        total_users=db.query(User).count(),
        total_doctors=db.query(DoctorProfile).count(),
        total_appointments=db.query(Appointment).count(),
        pending_appointments=db.query(Appointment).filter(Appointment.status == STATUS_PENDING).count(),
    )


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_all_appointments(
    principal: Principal = Depends(require('admin', 'list_appointments')),
    db: Session = Depends(get_db),
):
    appointments = db.query(Appointment).all()
    return [to_response(appointment) for appointment in chronological(appointments)]


@router.patch('/appointments/{appointment_id}/status', response_model=UpdateStatusResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    principal: Principal = Depends(require('admin', 'set_appointment_status')),
    db: Session = Depends(get_db),
):
    appointment = booking.set_appointment_status(db, appointment_id, data.status)
    return UpdateStatusResponse(
        message='Appointment status updated successfully.',
        updated_appointment=to_response(appointment),
    )


@router.delete('/appointments/{appointment_id}')
def delete_appointment(
    appointment_id: int,
    principal: Principal = Depends(require('admin', 'delete_appointment')),
    db: Session = Depends(get_db),
):
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Appointment not found.')

    try:
        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise booking.database_error(exc, 'deleting the appointment') from exc

    logger.info('Admin %s deleted appointment %s.', principal.id, appointment_id)
    return {'message': 'Appointment deleted successfully.'}
