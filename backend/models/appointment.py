"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.doctor import DoctorProfile
from backend.models.user import User


STATUS_PENDING = "pending"
STATUS_BOOKED = "booked"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_BOOKED, STATUS_CANCELLED, STATUS_COMPLETED)


class Appointment(Base):
    """Represents a booking of one doctor slot by a patient."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_doctor_slot", "doctor_id", "date", "time"),
        Index("idx_appointments_patient_date", "patient_id", "date"),
        Index("idx_appointments_status", "status"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctor_profiles.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String, nullable=False)
    duration_minutes = Column(Integer)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    notes = Column(Text)
    symptoms = Column(Text)
    signs = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    doctor = relationship(DoctorProfile, lazy="joined", innerjoin=True)
    patient = relationship(User, lazy="joined", innerjoin=True)
