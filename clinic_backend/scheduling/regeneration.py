"""Rebuild AVAILABLE slots inside a doctor's recorded generation window."""

import logging

from sqlalchemy.orm import Session

from clinic_backend.scheduling import clinic_time, generation_range
from clinic_backend.scheduling.conflicts import analyze_conflicts
from clinic_backend.scheduling.schedule_config import clinic_timezone, get_doctor, load_snapshot
from clinic_backend.scheduling.slot_lifecycle import cancel_appointments, delete_available_slots
from clinic_backend.scheduling.slot_materializer import generate_and_persist_slots

logger = logging.getLogger(__name__)

NO_WINDOW_REASON = 'No slots have been generated for this doctor yet. Use admin slot generation first.'
PAST_WINDOW_REASON = 'Stored slot generation range is in the past. Generate new slots first.'


def _skipped(doctor_id: int, reason: str) -> dict:
    logger.info('Skipping slot regeneration for doctor %s: %s', doctor_id, reason)
    return {
        'deleted_available': 0,
        'created': 0,
        'cancelled_appointments': 0,
        'skipped': True,
        'skip_reason': reason,
    }


def regenerate_slots_after_schedule_change(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    cancel_impacted: bool = False,
) -> dict:
    """Delete and re-materialize AVAILABLE slots from today to the window end.

    The delete (and any cancellations) commit as one transaction before the
    slots are re-created. Materialization is idempotent, so if it fails part
    way the same call can simply be repeated.
    """
    doctor = get_doctor(db, clinic_id, doctor_id)
    window = generation_range.get_range(doctor)
    if window is None:
        return _skipped(doctor_id, NO_WINDOW_REASON)

    today = clinic_time.clinic_today(clinic_timezone(doctor.clinic))
    if window.end < today:
        return _skipped(doctor_id, PAST_WINDOW_REASON)

    start = max(today, window.start)
    end = window.end

    try:
        cancelled: list[int] = []
        if cancel_impacted:
            impacted = analyze_conflicts(db, load_snapshot(db, clinic_id, doctor_id))
            cancelled = cancel_appointments(db, [conflict['id'] for conflict in impacted])

        deleted = delete_available_slots(db, clinic_id, doctor_id, start, end)
        db.commit()
    except Exception:
        db.rollback()
        raise

    result = generate_and_persist_slots(db, clinic_id, doctor_id, start, end)

    logger.info(
        'Regenerated slots for doctor %s from %s to %s: %s deleted, %s created',
        doctor_id,
        start,
        end,
        deleted,
        result.created,
    )
    return {
        'deleted_available': deleted,
        'created': result.created,
        'cancelled_appointments': len(cancelled),
        'skipped': False,
        'skip_reason': None,
    }
