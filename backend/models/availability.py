"""Availability model definitions."""

from sqlalchemy import JSON, Column, Date, ForeignKey, Integer, UniqueConstraint
from backend.database import Base


class Availability(Base):
    """Represents the slot labels a doctor publishes for one day."""
    __tablename__ = "availability"
    __table_args__ = (
        UniqueConstraint("doctor_id", "date", name="uq_availability_doctor_date"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctor_profiles.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    slots = Column(JSON, nullable=False, default=list)

    def has_slot(self, time_label: str) -> bool:
        return time_label in (self.slots or [])
