"""Time-off lifecycle and the slot clean-up and restore it triggers."""

import logging
from datetime import date

from sqlalchemy.orm import Session, joinedload

from clinic_backend.core.errors import BadRequestError, ConflictError, NotFoundError
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.schedule import TimeOff, TimeOffType
from clinic_backend.models.slot import Slot, SlotStatus
from clinic_backend.scheduling import clinic_time, generation_range
from clinic_backend.scheduling.schedule_config import (
    add_time_off,
    clinic_timezone,
    get_doctor,
    serialize_time_off,
)
from clinic_backend.scheduling.slot_lifecycle import cancel_appointments, delete_available_slots
from clinic_backend.scheduling.slot_materializer import generate_and_persist_slots

logger = logging.getLogger(__name__)

TIME_OFF_REASON = 'Time-off added for this date'


def _serialize_booked(appointment: Appointment) -> dict:
    patient = appointment.patient
    return {
        'id': appointment.id,
        'starts_at': appointment.starts_at,
        'ends_at': appointment.ends_at,
        'patient_name': patient.full_name if patient else None,
        'patient_phone': patient.phone if patient else None,
        'reason': TIME_OFF_REASON,
    }


def _booked_appointments_in_range(db: Session, clinic_id: int, doctor_id: int, start: date, end: date) -> list[Appointment]:
    """BOOKED appointments held by slots dated in range, plus unslotted ones starting in range."""
    doctor = get_doctor(db, clinic_id, doctor_id)
    timezone = clinic_timezone(doctor.clinic)
    range_start = clinic_time.local_day_bounds(start, timezone)[0]
    range_end = clinic_time.local_day_bounds(end, timezone)[1]

    slotted_ids = [
        appointment_id
        for (appointment_id,) in db.query(Slot.appointment_id).filter(
            Slot.clinic_id == clinic_id,
            Slot.doctor_id == doctor_id,
            Slot.date >= start,
            Slot.date <= end,
            Slot.appointment_id.is_not(None),
        ).all()
    ]

    query = db.query(Appointment).options(joinedload(Appointment.patient)).filter(
        Appointment.clinic_id == clinic_id,
        Appointment.doctor_id == doctor_id,
        Appointment.status == AppointmentStatus.BOOKED,
    )
    slotted = query.filter(Appointment.id.in_(slotted_ids)).all() if slotted_ids else []
    unslotted = query.filter(
        Appointment.starts_at >= range_start,
        Appointment.starts_at < range_end,
        ~Appointment.slot.has(),
    ).all()

    appointments = {appointment.id: appointment for appointment in slotted + unslotted}
    return sorted(appointments.values(), key=lambda appointment: (appointment.starts_at, appointment.id))


def delete_slots_for_date_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    """Delete AVAILABLE slots in range and report the bookings left standing.

    Joins the caller's transaction.
    """
    start = clinic_time.parse_date(start_date)
    end = clinic_time.parse_date(end_date)

    booked = _booked_appointments_in_range(db, clinic_id, doctor_id, start, end)
    deleted = delete_available_slots(db, clinic_id, doctor_id, start, end)

    return {
        'deleted_count': deleted,
        'booked_appointments': [_serialize_booked(appointment) for appointment in booked],
    }


def force_delete_slots_for_date_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    """Cancel every booking in range and delete all of its slots. Joins the caller's transaction."""
    start = clinic_time.parse_date(start_date)
    end = clinic_time.parse_date(end_date)

    booked = _booked_appointments_in_range(db, clinic_id, doctor_id, start, end)
    cancelled = cancel_appointments(db, [appointment.id for appointment in booked])

    deleted = db.query(Slot).filter(
        Slot.clinic_id == clinic_id,
        Slot.doctor_id == doctor_id,
        Slot.date >= start,
        Slot.date <= end,
    ).delete(synchronize_session=False)

    if cancelled:
        logger.info('Force-deleted %s slots for doctor %s and cancelled appointments %s', deleted, doctor_id, cancelled)
    return {'deleted_slots': deleted, 'cancelled_appointments': len(cancelled)}


def restore_slots_for_date_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    result = generate_and_persist_slots(db, clinic_id, doctor_id, start_date, end_date)
    return {'restored': result.created}


def _parse_time_off_type(value) -> TimeOffType:
    try:
        return TimeOffType(value)
    except ValueError as exc:
        allowed = ', '.join(member.value for member in TimeOffType)
        raise BadRequestError(f'type must be one of: {allowed}') from exc


def create_time_off(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    start_date: str,
    end_date: str,
    time_off_type,
    reason: str | None = None,
    force_delete: bool = False,
) -> dict:
    doctor = get_doctor(db, clinic_id, doctor_id)
    start = clinic_time.parse_date(start_date)
    end = clinic_time.parse_date(end_date)
    if start > end:
        raise BadRequestError('start_date must be before or equal to end_date')
    parsed_type = _parse_time_off_type(time_off_type)

    try:
        deletion = delete_slots_for_date_range(db, clinic_id, doctor_id, start, end)
        booked = deletion['booked_appointments']
        appointments_cancelled = 0

        if booked and not force_delete:
            raise ConflictError({
                'message': 'Cannot create time-off: there are booked appointments in this date range',
                'code': 'BOOKED_SLOTS_EXIST',
                'booked_appointments': booked,
                'total_booked': len(booked),
            })

        if booked:
            forced = force_delete_slots_for_date_range(db, clinic_id, doctor_id, start, end)
            appointments_cancelled = forced['cancelled_appointments']

        time_off = add_time_off(db, doctor, start, end, parsed_type, reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    return {
        'time_off': serialize_time_off(time_off),
        'slots_deleted': deletion['deleted_count'],
        'booked_appointments': booked,
        'appointments_cancelled': appointments_cancelled,
    }


def delete_time_off(db: Session, clinic_id: int, doctor_id: int, time_off_id: int) -> dict:
    doctor = get_doctor(db, clinic_id, doctor_id)
    time_off = db.query(TimeOff).filter(
        TimeOff.id == time_off_id,
        TimeOff.doctor_id == doctor_id,
        TimeOff.clinic_id == clinic_id,
    ).first()
    if not time_off:
        raise NotFoundError('Time off entry not found')

    start, end = time_off.start_date, time_off.end_date
    try:
        db.delete(time_off)
        db.commit()
    except Exception:
        db.rollback()
        raise

    window = generation_range.get_range(doctor)
    if doctor.schedule_configured_at is None or window is None:
        return {'slots_restored': 0}

    # Only refill dates that were materialized before and are not in the past.
    today = clinic_time.clinic_today(clinic_timezone(doctor.clinic))
    restore_start = max(start, window.start, today)
    restore_end = min(end, window.end)
    if restore_start > restore_end:
        return {'slots_restored': 0}

    result = restore_slots_for_date_range(db, clinic_id, doctor_id, restore_start, restore_end)
    return {'slots_restored': result['restored']}
