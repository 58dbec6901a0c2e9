"""Tracks the clinic-local date window a doctor's slots were materialized for."""

from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from clinic_backend.models.doctor import Doctor
from clinic_backend.scheduling import clinic_time


@dataclass(frozen=True)
class GenerationWindow:
    start: date
    end: date


def get_range(doctor: Doctor | None) -> GenerationWindow | None:
    if doctor is None or doctor.slots_generated_from is None or doctor.slots_generated_to is None:
        return None
    return GenerationWindow(start=doctor.slots_generated_from, end=doctor.slots_generated_to)


def record_range(doctor: Doctor, start: date, end: date) -> GenerationWindow:
    """Widen the stored window to cover ``start``..``end``.

    Joins the caller's transaction. Stamps ``schedule_configured_at`` the first
    time a window is recorded.
    """
    current = get_range(doctor)
    if current is not None:
        start = min(start, current.start)
        end = max(end, current.end)

    doctor.slots_generated_from = start
    doctor.slots_generated_to = end
    if doctor.schedule_configured_at is None:
        doctor.schedule_configured_at = clinic_time.utcnow()

    return GenerationWindow(start=start, end=end)


def get_slot_generation_range(db: Session, doctor_id: int) -> dict:
    window = get_range(db.get(Doctor, doctor_id))
    if window is None:
        return {'from': None, 'to': None}
    return {'from': clinic_time.format_date(window.start), 'to': clinic_time.format_date(window.end)}
