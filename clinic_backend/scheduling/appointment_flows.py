"""Appointment writes that move slots in the same transaction."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from clinic_backend.core.errors import BadRequestError, ConflictError, NotFoundError
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.patient import Patient
from clinic_backend.models.slot import Slot
from clinic_backend.scheduling import clinic_time
from clinic_backend.scheduling.schedule_config import get_doctor
from clinic_backend.scheduling.slot_lifecycle import book_slot, find_slot_by_time, release_slot

logger = logging.getLogger(__name__)


def normalize_instant(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def get_appointment(db: Session, clinic_id: int, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.clinic_id == clinic_id,
    ).first()
    if not appointment:
        raise NotFoundError('Appointment not found')
    return appointment


def _get_patient(db: Session, clinic_id: int, patient_id: int) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id, Patient.clinic_id == clinic_id).first()
    if not patient:
        raise NotFoundError('Patient not found')
    return patient


def _get_doctor_slot(db: Session, doctor: Doctor, slot_id: int) -> Slot:
    slot = db.query(Slot).filter(
        Slot.id == slot_id,
        Slot.clinic_id == doctor.clinic_id,
        Slot.doctor_id == doctor.id,
    ).first()
    if not slot:
        raise NotFoundError('Slot not found')
    return slot


def _ensure_future(starts_at: datetime) -> None:
    if starts_at <= clinic_time.utcnow():
        raise BadRequestError('Appointments must be scheduled in the future.')


def _book_new_appointment(
    db: Session,
    doctor: Doctor,
    patient_id: int,
    slot_id: int | None,
    starts_at: datetime | None,
    reason: str | None,
) -> Appointment:
    if slot_id is None and starts_at is None:
        raise BadRequestError('Either slot_id or starts_at is required.')

    slot = None
    if slot_id is not None:
        slot = _get_doctor_slot(db, doctor, slot_id)
    else:
        starts_at = normalize_instant(starts_at)
        slot = find_slot_by_time(db, doctor.id, starts_at)

    if slot is not None:
        starts_at, ends_at = slot.starts_at, slot.ends_at
    else:
        # No persisted slot at this time: fall back to an overlap check.
        ends_at = starts_at + timedelta(minutes=doctor.appointment_duration_min)
        overlapping = db.query(Appointment.id).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.status == AppointmentStatus.BOOKED,
            Appointment.starts_at < ends_at,
            Appointment.ends_at > starts_at,
        ).first()
        if overlapping:
            raise ConflictError({'message': 'This time is already booked.', 'code': 'TIME_TAKEN'})

    _ensure_future(starts_at)

    appointment = Appointment(
        clinic_id=doctor.clinic_id,
        doctor_id=doctor.id,
        patient_id=patient_id,
        starts_at=starts_at,
        ends_at=ends_at,
        status=AppointmentStatus.BOOKED,
        reason=reason,
    )
    db.add(appointment)
    db.flush()

    if slot is not None:
        book_slot(db, slot.id, appointment.id)
    return appointment


def create_appointment(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    patient_id: int,
    slot_id: int | None = None,
    starts_at: datetime | None = None,
    reason: str | None = None,
) -> Appointment:
    doctor = get_doctor(db, clinic_id, doctor_id, active_only=True)
    _get_patient(db, clinic_id, patient_id)

    try:
        appointment = _book_new_appointment(db, doctor, patient_id, slot_id, starts_at, reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    return appointment


def cancel_appointment(db: Session, clinic_id: int, appointment_id: int) -> Appointment:
    appointment = get_appointment(db, clinic_id, appointment_id)
    if appointment.status != AppointmentStatus.BOOKED:
        raise BadRequestError('Only booked appointments can be cancelled.')

    try:
        appointment.status = AppointmentStatus.CANCELLED
        release_slot(db, appointment.id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    return appointment


def reschedule_appointment(
    db: Session,
    clinic_id: int,
    appointment_id: int,
    slot_id: int | None = None,
    starts_at: datetime | None = None,
) -> Appointment:
    """Move a booking: the old appointment becomes RESCHEDULED and a new one is booked."""
    original = get_appointment(db, clinic_id, appointment_id)
    if original.status != AppointmentStatus.BOOKED:
        raise BadRequestError('Only booked appointments can be rescheduled.')

    doctor = get_doctor(db, clinic_id, original.doctor_id, active_only=True)

    try:
        original.status = AppointmentStatus.RESCHEDULED
        release_slot(db, original.id)
        db.flush()
        replacement = _book_new_appointment(db, doctor, original.patient_id, slot_id, starts_at, original.reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info('Rescheduled appointment %s to %s', appointment_id, replacement.id)
    db.refresh(replacement)
    return replacement
