"""Appointment model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from clinic_backend.database import Base


class AppointmentStatus(str, enum.Enum):
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


class Appointment(Base):
    """A pre-booked visit. Holds the slot it claimed through ``Slot.appointment_id``."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    status = Column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=20),
        nullable=False,
        default=AppointmentStatus.BOOKED,
    )
    reason = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None))

    patient = relationship("Patient")
    slot = relationship("Slot", back_populates="appointment", uselist=False)


Index(
    "idx_appointments_doctor_status_start",
    Appointment.clinic_id,
    Appointment.doctor_id,
    Appointment.status,
    Appointment.starts_at,
)
