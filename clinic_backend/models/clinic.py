"""Clinic model definitions."""

from sqlalchemy import Boolean, Column, Integer, String

from clinic_backend.database import Base


class Clinic(Base):
    """A tenant. Every doctor, slot and appointment belongs to exactly one clinic."""
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    timezone = Column(String, nullable=False, default="America/Chicago")
    is_active = Column(Boolean, nullable=False, default=True)
