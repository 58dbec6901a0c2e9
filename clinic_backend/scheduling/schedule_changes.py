"""Apply a schedule change: validate, check conflicts, persist, regenerate."""

import logging

from sqlalchemy.orm import Session

from clinic_backend.core.errors import BadRequestError, ConflictError
from clinic_backend.scheduling import clinic_time
from clinic_backend.scheduling.conflicts import analyze_conflicts
from clinic_backend.scheduling.regeneration import regenerate_slots_after_schedule_change
from clinic_backend.scheduling.schedule_config import (
    ScheduleChange,
    apply_schedule_change,
    get_doctor,
    get_doctor_schedule,
    is_schedule_fully_configured,
    load_snapshot,
    validate_schedule_change,
)
from clinic_backend.scheduling.slot_lifecycle import cancel_appointments

logger = logging.getLogger(__name__)


def _appointments_to_cancel(conflicts: list[dict], requested_ids: list[int] | None) -> list[int]:
    conflicting_ids = [conflict['id'] for conflict in conflicts]
    if requested_ids is None:
        return conflicting_ids

    unknown = [appointment_id for appointment_id in requested_ids if appointment_id not in conflicting_ids]
    if unknown:
        raise BadRequestError({
            'message': 'Only appointments that conflict with the new schedule can be cancelled',
            'code': 'NOT_CONFLICTING',
            'appointment_ids': unknown,
        })
    return list(requested_ids)


def update_schedule_with_conflict_resolution(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    change: ScheduleChange,
    cancel_conflicting: bool = False,
    appointment_ids_to_cancel: list[int] | None = None,
) -> dict:
    doctor = get_doctor(db, clinic_id, doctor_id)
    validate_schedule_change(change)

    snapshot = load_snapshot(db, clinic_id, doctor_id).merged(change)
    conflicts = analyze_conflicts(db, snapshot)
    if conflicts and not cancel_conflicting:
        raise ConflictError({
            'message': 'Schedule change would conflict with existing appointments',
            'code': 'SCHEDULE_CONFLICTS',
            'conflicts': conflicts,
            'total_conflicts': len(conflicts),
        })

    ids_to_cancel = _appointments_to_cancel(conflicts, appointment_ids_to_cancel) if conflicts else []
    was_configured = doctor.schedule_configured_at is not None
    is_first_time_configuration = False

    try:
        cancelled = cancel_appointments(db, ids_to_cancel)
        apply_schedule_change(db, doctor, change)

        # First full configuration only marks the doctor; slots wait for an
        # explicit generation request.
        if not was_configured and is_schedule_fully_configured(db, doctor.id):
            doctor.schedule_configured_at = clinic_time.utcnow()
            is_first_time_configuration = True

        db.commit()
    except Exception:
        db.rollback()
        raise

    if cancelled:
        logger.info('Schedule change for doctor %s cancelled %s appointments', doctor_id, len(cancelled))

    slots_regenerated = None
    if was_configured:
        slots_regenerated = regenerate_slots_after_schedule_change(db, clinic_id, doctor_id)

    return {
        'schedule': get_doctor_schedule(db, clinic_id, doctor_id),
        'cancelled_appointments': cancelled,
        'is_first_time_configuration': is_first_time_configuration,
        'slots_regenerated': slots_regenerated,
    }


def update_doctor_schedule(db: Session, clinic_id: int, doctor_id: int, change: ScheduleChange) -> dict:
    return update_schedule_with_conflict_resolution(db, clinic_id, doctor_id, change, cancel_conflicting=False)
