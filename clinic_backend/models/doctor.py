"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from clinic_backend.database import Base


class Doctor(Base):
    """A bookable practitioner with a recurring weekly schedule."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    full_name = Column(String, nullable=False)
    specialization = Column(String, nullable=False, default="")
    appointment_duration_min = Column(Integer, nullable=False, default=15)
    has_license = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Set the first time the recurring schedule became fully specified.
    schedule_configured_at = Column(DateTime, nullable=True)
    # Materialized window, clinic-local calendar dates.
    slots_generated_from = Column(Date, nullable=True)
    slots_generated_to = Column(Date, nullable=True)

    clinic = relationship("Clinic")
    shift_templates = relationship("ShiftTemplate", cascade="all, delete-orphan", back_populates="doctor")
    weekly_shifts = relationship("WeeklyShift", cascade="all, delete-orphan", back_populates="doctor")
    time_off = relationship("TimeOff", cascade="all, delete-orphan", back_populates="doctor")


Index("idx_doctors_clinic_active", Doctor.clinic_id, Doctor.is_active)
