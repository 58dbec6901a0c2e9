"""Materialized slot model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from clinic_backend.database import Base
from clinic_backend.models.schedule import ShiftName


class SlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"


class Slot(Base):
    """One bookable unit of doctor time.

    ``starts_at``/``ends_at`` are naive UTC instants. ``date`` is the clinic-local
    date of the shift the slot was cut from, so slots of an overnight shift that
    start after midnight still carry the previous day's date.
    """
    __tablename__ = "slots"
    __table_args__ = (UniqueConstraint("doctor_id", "starts_at", name="uq_slots_doctor_starts_at"),)

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    shift_name = Column(Enum(ShiftName, name="shift_name", native_enum=False, length=20), nullable=False)
    status = Column(
        Enum(SlotStatus, name="slot_status", native_enum=False, length=20),
        nullable=False,
        default=SlotStatus.AVAILABLE,
    )
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True, unique=True)

    appointment = relationship("Appointment", back_populates="slot")


Index("idx_slots_doctor_date_status", Slot.clinic_id, Slot.doctor_id, Slot.date, Slot.status)
