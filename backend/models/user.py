"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func
from backend.database import Base


ROLES = ("patient", "doctor", "admin")


class User(Base):
    """Represents an application account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False)  # patient/doctor/admin
    name = Column(String)
    image = Column(String)
    location = Column(String, default="")
    created_at = Column(DateTime, server_default=func.now())
