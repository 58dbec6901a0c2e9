"""Platform-admin slot operations: status, bulk generation, clean-up and licensing."""

import logging
from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinic_backend.core.errors import BadRequestError
from clinic_backend.models.clinic import Clinic
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.slot import Slot, SlotStatus
from clinic_backend.scheduling import clinic_time, generation_range
from clinic_backend.scheduling.schedule_config import (
    clinic_timezone,
    get_clinic,
    get_doctor,
    is_schedule_fully_configured,
)
from clinic_backend.scheduling.slot_generation import generate_slots_for_range
from clinic_backend.scheduling.time_off import delete_slots_for_date_range, force_delete_slots_for_date_range

logger = logging.getLogger(__name__)


def _year_end(year: int) -> date:
    return date(year, 12, 31)


def _future_slot_counts(db: Session, doctor: Doctor, today: date) -> dict[SlotStatus, int]:
    rows = db.query(Slot.status, func.count(Slot.id)).filter(
        Slot.doctor_id == doctor.id,
        Slot.date >= today,
        Slot.date <= _year_end(today.year),
    ).group_by(Slot.status).all()
    return {status: count for status, count in rows}


def get_clinic_slot_status(db: Session, clinic_id: int) -> dict:
    clinic = get_clinic(db, clinic_id)
    today = clinic_time.clinic_today(clinic_timezone(clinic))

    doctors = db.query(Doctor).filter(Doctor.clinic_id == clinic_id).order_by(Doctor.full_name.asc()).all()
    statuses = []
    for doctor in doctors:
        counts = _future_slot_counts(db, doctor, today)
        window = generation_range.get_range(doctor)
        statuses.append({
            'doctor_id': doctor.id,
            'doctor_name': doctor.full_name,
            'specialization': doctor.specialization,
            'has_license': bool(doctor.has_license),
            'is_active': bool(doctor.is_active),
            'schedule_configured_at': doctor.schedule_configured_at,
            'has_schedule': is_schedule_fully_configured(db, doctor.id),
            'slots_generated_from': clinic_time.format_date(window.start) if window else None,
            'slots_generated_to': clinic_time.format_date(window.end) if window else None,
            'slot_count': sum(counts.values()),
            'available_slots': counts.get(SlotStatus.AVAILABLE, 0),
            'booked_slots': counts.get(SlotStatus.BOOKED, 0),
            'blocked_slots': counts.get(SlotStatus.BLOCKED, 0),
        })

    return {
        'clinic_id': clinic.id,
        'clinic_name': clinic.name,
        'total_doctors': len(statuses),
        'configured_doctors': sum(1 for status in statuses if status['schedule_configured_at'] is not None),
        'licensed_doctors': sum(1 for status in statuses if status['has_license']),
        'total_slots': sum(status['slot_count'] for status in statuses),
        'doctors': statuses,
    }


def bulk_generate_slots_for_clinic(db: Session, clinic_id: int, year: int | None = None) -> dict:
    """Generate slots up to Dec 31 for every licensed, active doctor of a clinic.

    Doctors are processed one at a time; a failure is logged and recorded and
    the remaining doctors still run.
    """
    clinic = get_clinic(db, clinic_id)
    today = clinic_time.clinic_today(clinic_timezone(clinic))
    target_year = year or today.year
    start = max(today, date(target_year, 1, 1))
    end = _year_end(target_year)
    if start > end:
        raise BadRequestError(f'Year {target_year} is already over')

    doctors = db.query(Doctor).filter(
        Doctor.clinic_id == clinic_id,
        Doctor.is_active.is_(True),
        Doctor.has_license.is_(True),
    ).order_by(Doctor.id.asc()).all()

    result = {
        'clinic_id': clinic.id,
        'clinic_name': clinic.name,
        'processed_doctors': 0,
        'total_slots_created': 0,
        'errors': [],
        'doctor_results': [],
    }

    for doctor_id, doctor_name in [(doctor.id, doctor.full_name) for doctor in doctors]:
        try:
            generated = generate_slots_for_range(db, clinic_id, doctor_id, start, end)
        except Exception as exc:
            db.rollback()
            logger.exception('Slot generation failed for doctor %s in clinic %s', doctor_id, clinic_id)
            result['errors'].append({
                'doctor_id': doctor_id,
                'doctor_name': doctor_name,
                'error': str(getattr(exc, 'detail', exc)),
            })
            continue

        result['processed_doctors'] += 1
        result['total_slots_created'] += generated['slots_created']
        result['doctor_results'].append({
            'doctor_id': doctor_id,
            'doctor_name': doctor_name,
            'slots_created': generated['slots_created'],
            'start_date': generated['start_date'],
            'end_date': generated['end_date'],
        })

    logger.info(
        'Bulk slot generation for clinic %s: %s doctors processed, %s slots created, %s errors',
        clinic_id,
        result['processed_doctors'],
        result['total_slots_created'],
        len(result['errors']),
    )
    return result


def bulk_generate_slots_for_all_clinics(db: Session, year: int | None = None) -> dict:
    clinic_ids = [clinic_id for (clinic_id,) in db.query(Clinic.id).filter(Clinic.is_active.is_(True)).order_by(Clinic.id).all()]

    results = []
    failed_clinics = []
    for clinic_id in clinic_ids:
        try:
            results.append(bulk_generate_slots_for_clinic(db, clinic_id, year))
        except Exception:
            db.rollback()
            logger.exception('Bulk slot generation failed for clinic %s', clinic_id)
            failed_clinics.append(clinic_id)

    return {
        'processed_clinics': len(results),
        'failed_clinics': failed_clinics,
        'total_slots_created': sum(result['total_slots_created'] for result in results),
        'results': results,
    }


def generate_slots_for_doctor(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    """Explicit generation with defaults of today through Dec 31 (clinic-local)."""
    doctor = get_doctor(db, clinic_id, doctor_id)
    doctor_name = doctor.full_name
    today = clinic_time.clinic_today(clinic_timezone(doctor.clinic))

    start = start_date or clinic_time.format_date(today)
    end = end_date or clinic_time.format_date(_year_end(today.year))
    generated = generate_slots_for_range(db, clinic_id, doctor_id, start, end)

    return {
        'doctor_id': doctor_id,
        'doctor_name': doctor_name,
        'slots_created': generated['slots_created'],
        'start_date': generated['start_date'],
        'end_date': generated['end_date'],
    }


def _validated_range(start_date, end_date) -> tuple[date, date]:
    start = clinic_time.parse_date(start_date)
    end = clinic_time.parse_date(end_date)
    if start > end:
        raise BadRequestError('Start date must be before or equal to end date')
    return start, end


def delete_slots_in_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    get_doctor(db, clinic_id, doctor_id)
    start, end = _validated_range(start_date, end_date)
    try:
        result = delete_slots_for_date_range(db, clinic_id, doctor_id, start, end)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


def force_delete_slots_in_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    get_doctor(db, clinic_id, doctor_id)
    start, end = _validated_range(start_date, end_date)
    try:
        result = force_delete_slots_for_date_range(db, clinic_id, doctor_id, start, end)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


def _delete_future_available_slots(db: Session, doctor: Doctor) -> int:
    today = clinic_time.clinic_today(clinic_timezone(doctor.clinic))
    return db.query(Slot).filter(
        Slot.clinic_id == doctor.clinic_id,
        Slot.doctor_id == doctor.id,
        Slot.date >= today,
        Slot.status == SlotStatus.AVAILABLE,
    ).delete(synchronize_session=False)


def clear_future_slots(db: Session, clinic_id: int, doctor_id: int) -> dict:
    doctor = get_doctor(db, clinic_id, doctor_id)
    try:
        deleted = _delete_future_available_slots(db, doctor)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {'deleted_count': deleted}


def assign_license(db: Session, clinic_id: int, doctor_id: int) -> dict:
    doctor = get_doctor(db, clinic_id, doctor_id)
    try:
        doctor.has_license = True
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info('License assigned to doctor %s', doctor_id)
    return {'doctor_id': doctor_id, 'has_license': True, 'deleted_slots': 0}


def revoke_license(db: Session, clinic_id: int, doctor_id: int) -> dict:
    """Remove the license and the doctor's future AVAILABLE slots. Bookings stay."""
    doctor = get_doctor(db, clinic_id, doctor_id)
    try:
        doctor.has_license = False
        deleted = _delete_future_available_slots(db, doctor)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info('License revoked for doctor %s; %s future slots removed', doctor_id, deleted)
    return {'doctor_id': doctor_id, 'has_license': False, 'deleted_slots': deleted}
