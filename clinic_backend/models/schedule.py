"""Recurring schedule configuration: shift templates, weekly flags and time off."""

import enum

from sqlalchemy import Boolean, Column, Date, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from clinic_backend.database import Base


class ShiftName(str, enum.Enum):
    """Named shifts. Iterate the enum rather than listing members elsewhere."""

    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"


class TimeOffType(str, enum.Enum):
    BREAK = "BREAK"
    VACATION = "VACATION"
    OTHER = "OTHER"


class ShiftTemplate(Base):
    """Wall-clock start/end (HH:MM, clinic-local) of one named shift for a doctor.

    ``end_time`` earlier than or equal to ``start_time`` marks an overnight shift.
    """
    __tablename__ = "shift_templates"
    __table_args__ = (UniqueConstraint("doctor_id", "shift_name", name="uq_shift_templates_doctor_shift"),)

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    shift_name = Column(Enum(ShiftName, name="shift_name", native_enum=False, length=20), nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)

    doctor = relationship("Doctor", back_populates="shift_templates")


class WeeklyShift(Base):
    """Whether a named shift runs on a day of week (0 = Sunday ... 6 = Saturday)."""
    __tablename__ = "weekly_shifts"
    __table_args__ = (
        UniqueConstraint("doctor_id", "day_of_week", "shift_name", name="uq_weekly_shifts_doctor_day_shift"),
    )

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    shift_name = Column(Enum(ShiftName, name="shift_name", native_enum=False, length=20), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)

    doctor = relationship("Doctor", back_populates="weekly_shifts")


class TimeOff(Base):
    """Inclusive range of clinic-local calendar dates on which the doctor does not work."""
    __tablename__ = "time_off"

    id = Column(Integer, primary_key=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    type = Column(Enum(TimeOffType, name="time_off_type", native_enum=False, length=20), nullable=False)
    reason = Column(String, nullable=True)

    doctor = relationship("Doctor", back_populates="time_off")
