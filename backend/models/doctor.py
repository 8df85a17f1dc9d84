"""Doctor profile model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.availability import Availability
from backend.models.user import User


class DoctorProfile(Base):
    """Specialization and published availability of a doctor account."""
    __tablename__ = "doctor_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    specialization = Column(String, nullable=False)

    user = relationship(User, lazy="joined", innerjoin=True)
    availability = relationship(
        Availability,
        order_by=Availability.date,
        cascade="all, delete-orphan",
    )

    def entry_for(self, day):
        for entry in self.availability:
            if entry.date == day:
                return entry
        return None
