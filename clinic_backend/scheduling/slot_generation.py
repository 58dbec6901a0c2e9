"""Explicit slot generation for a date range, plus non-persisting previews."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import BadRequestError
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.scheduling import clinic_time, generation_range
from clinic_backend.scheduling.schedule_config import (
    clinic_timezone,
    get_doctor,
    is_schedule_fully_configured,
    load_snapshot,
)
from clinic_backend.scheduling.slot_lifecycle import delete_available_slots
from clinic_backend.scheduling.slot_materializer import generate_and_persist_slots, plan_slots

logger = logging.getLogger(__name__)

TAKEN_APPOINTMENT_STATUSES = (AppointmentStatus.BOOKED, AppointmentStatus.COMPLETED)


def parse_date_range(start_date, end_date, max_days: int) -> tuple[date, date]:
    start = clinic_time.parse_date(start_date)
    end = clinic_time.parse_date(end_date)
    if start > end:
        raise BadRequestError('Start date must be before or equal to end date')
    if (end - start).days + 1 > max_days:
        raise BadRequestError(f'Date range cannot exceed {max_days} days')
    return start, end


def generate_slots_for_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    """Materialize slots for ``start_date``..``end_date`` and record the window.

    AVAILABLE slots already in the range are replaced so they follow the current
    configuration; BOOKED ones are left alone.
    """
    start, end = parse_date_range(start_date, end_date, config.SLOT_RANGE_MAX_DAYS)

    doctor = get_doctor(db, clinic_id, doctor_id, active_only=True)
    clinic_time.get_zone(clinic_timezone(doctor.clinic))
    if not is_schedule_fully_configured(db, doctor.id):
        raise BadRequestError(
            'Doctor schedule is not fully configured. '
            'Please set duration, shift templates, and weekly schedule first.'
        )

    try:
        delete_available_slots(db, clinic_id, doctor_id, start, end)
        generation_range.record_range(doctor, start, end)
        db.commit()
    except Exception:
        db.rollback()
        raise

    result = generate_and_persist_slots(db, clinic_id, doctor_id, start, end)
    logger.info('Generated %s slots for doctor %s from %s to %s', result.created, doctor_id, start, end)
    return {
        'slots_created': result.created,
        'slots_skipped': result.skipped,
        'start_date': clinic_time.format_date(start),
        'end_date': clinic_time.format_date(end),
    }


def preview_slots_for_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    """Expand the configuration without writing anything.

    Times already held by a BOOKED or COMPLETED appointment are marked
    unavailable. The license flag is not required for a preview.
    """
    start, end = parse_date_range(start_date, end_date, config.SLOT_PREVIEW_MAX_DAYS)
    snapshot = load_snapshot(db, clinic_id, doctor_id, active_only=True)
    timezone = snapshot.timezone

    planned = plan_slots(snapshot, start, end, require_license=False)

    range_start = clinic_time.local_day_bounds(start, timezone)[0]
    range_end = clinic_time.local_day_bounds(clinic_time.add_calendar_days(end, 1, timezone), timezone)[1]
    taken = {
        starts_at
        for (starts_at,) in db.query(Appointment.starts_at).filter(
            Appointment.clinic_id == clinic_id,
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(TAKEN_APPOINTMENT_STATUSES),
            Appointment.starts_at >= range_start,
            Appointment.starts_at < range_end,
        ).all()
    }

    days = {day: [] for day in clinic_time.iter_dates(start, end)}
    for slot in sorted(planned, key=lambda planned_slot: planned_slot.starts_at):
        days[slot.date].append({
            'time': clinic_time.utc_to_local_time(slot.starts_at, timezone),
            'starts_at': slot.starts_at,
            'ends_at': slot.ends_at,
            'shift': slot.shift_name.value,
            'is_available': slot.starts_at not in taken,
        })

    return {
        'days': [{'date': clinic_time.format_date(day), 'slots': slots} for day, slots in days.items()],
        'timezone': timezone,
        'doctor_duration_min': snapshot.duration_min,
    }


def get_slots_summary(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    preview = preview_slots_for_range(db, clinic_id, doctor_id, start_date, end_date)

    total_slots = 0
    available_slots = 0
    working_days = 0
    for day in preview['days']:
        if day['slots']:
            working_days += 1
            total_slots += len(day['slots'])
            available_slots += sum(1 for slot in day['slots'] if slot['is_available'])

    return {
        'total_days': len(preview['days']),
        'working_days': working_days,
        'total_slots': total_slots,
        'available_slots': available_slots,
        'booked_slots': total_slots - available_slots,
        'timezone': preview['timezone'],
        'doctor_duration_min': preview['doctor_duration_min'],
    }
