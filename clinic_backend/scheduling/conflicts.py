"""Find booked appointments a proposed schedule would no longer cover."""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session, joinedload

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.schedule import ShiftName
from clinic_backend.scheduling import clinic_time
from clinic_backend.scheduling.schedule_config import (
    DAY_NAMES,
    ScheduleChange,
    ScheduleSnapshot,
    get_doctor,
    load_snapshot,
    validate_schedule_change,
)


class ConflictReason(str, enum.Enum):
    TIME_OUTSIDE_SHIFT = 'TIME_OUTSIDE_SHIFT'
    SHIFT_DISABLED = 'SHIFT_DISABLED'
    DURATION_MISMATCH = 'DURATION_MISMATCH'


@dataclass(frozen=True)
class _ShiftMatch:
    shift_name: ShiftName
    day_of_week: int
    minutes: int


def _matching_shifts(snapshot: ScheduleSnapshot, day_of_week: int, minutes: int) -> list[_ShiftMatch]:
    matches = []
    for shift_name in ShiftName:
        window = snapshot.templates.get(shift_name)
        if window is None:
            continue
        if window.contains(minutes):
            matches.append(_ShiftMatch(shift_name, day_of_week, minutes))
        # After midnight this may be the tail of the previous day's overnight shift.
        shifted = minutes + clinic_time.MINUTES_PER_DAY
        if window.is_overnight and window.contains(shifted):
            matches.append(_ShiftMatch(shift_name, (day_of_week - 1) % 7, shifted))
    return matches


def classify_appointment(snapshot: ScheduleSnapshot, starts_at: datetime) -> ConflictReason | None:
    """Reason the appointment no longer fits ``snapshot``, or None when it does."""
    timezone = snapshot.timezone
    local_date = clinic_time.utc_to_local_date(starts_at, timezone)
    day_of_week = clinic_time.day_of_week(local_date, timezone)
    minutes = clinic_time.utc_to_local_minutes(starts_at, timezone)

    matches = _matching_shifts(snapshot, day_of_week, minutes)
    if not matches:
        return ConflictReason.TIME_OUTSIDE_SHIFT

    enabled = [match for match in matches if snapshot.is_enabled(match.day_of_week, match.shift_name)]
    if not enabled:
        return ConflictReason.SHIFT_DISABLED

    duration = snapshot.duration_min
    if duration <= 0:
        return ConflictReason.DURATION_MISMATCH

    for match in enabled:
        window = snapshot.templates[match.shift_name]
        offset = match.minutes - window.start_minutes
        if offset % duration == 0 and match.minutes + duration <= window.range_end_minutes:
            return None

    return ConflictReason.DURATION_MISMATCH


def describe_conflict(reason: ConflictReason, snapshot: ScheduleSnapshot, starts_at: datetime) -> str:
    local_time = clinic_time.utc_to_local_time(starts_at, snapshot.timezone)
    if reason is ConflictReason.SHIFT_DISABLED:
        local_date = clinic_time.utc_to_local_date(starts_at, snapshot.timezone)
        day_name = DAY_NAMES[clinic_time.day_of_week(local_date, snapshot.timezone)]
        return f'Shift at {local_time} is disabled on {day_name}'
    if reason is ConflictReason.DURATION_MISMATCH:
        return f"Time {local_time} doesn't align with new {snapshot.duration_min}-minute slot grid"
    return f'Appointment time {local_time} falls outside new shift hours'


def serialize_conflict(appointment: Appointment, reason: ConflictReason, snapshot: ScheduleSnapshot) -> dict:
    patient = appointment.patient
    return {
        'id': appointment.id,
        'starts_at': appointment.starts_at,
        'ends_at': appointment.ends_at,
        'patient_name': patient.full_name if patient else None,
        'patient_phone': patient.phone if patient else None,
        'reason': reason.value,
        'message': describe_conflict(reason, snapshot, appointment.starts_at),
    }


def analyze_conflicts(
    db: Session,
    snapshot: ScheduleSnapshot,
    now: datetime | None = None,
    until: datetime | None = None,
) -> list[dict]:
    """Future BOOKED appointments of the doctor that ``snapshot`` does not cover."""
    now = now or clinic_time.utcnow()

    query = db.query(Appointment).options(joinedload(Appointment.patient)).filter(
        Appointment.clinic_id == snapshot.clinic_id,
        Appointment.doctor_id == snapshot.doctor_id,
        Appointment.status == AppointmentStatus.BOOKED,
        Appointment.starts_at >= now,
    )
    if until is not None:
        query = query.filter(Appointment.starts_at < until)

    conflicts = []
    for appointment in query.order_by(Appointment.starts_at.asc(), Appointment.id.asc()).all():
        reason = classify_appointment(snapshot, appointment.starts_at)
        if reason is not None:
            conflicts.append(serialize_conflict(appointment, reason, snapshot))
    return conflicts


def get_impacted_appointments(db: Session, clinic_id: int, doctor_id: int, change: ScheduleChange | None = None) -> dict:
    snapshot = load_snapshot(db, clinic_id, doctor_id)
    if change is not None:
        validate_schedule_change(change)
        snapshot = snapshot.merged(change)

    impacted = analyze_conflicts(db, snapshot)
    return {'impacted_appointments': impacted, 'total_impacted': len(impacted)}


def check_schedule_conflicts(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    change: ScheduleChange,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict:
    get_doctor(db, clinic_id, doctor_id)
    validate_schedule_change(change)
    snapshot = load_snapshot(db, clinic_id, doctor_id).merged(change)

    now = clinic_time.utcnow()
    since = now
    if start_date:
        since = max(now, clinic_time.local_datetime_to_utc(start_date, '00:00', snapshot.timezone))
    if end_date:
        until = clinic_time.local_day_bounds(end_date, snapshot.timezone)[1]
    else:
        until = now + timedelta(days=config.CONFLICT_LOOKAHEAD_DAYS)

    conflicts = analyze_conflicts(db, snapshot, now=since, until=until)
    return {
        'has_conflicts': bool(conflicts),
        'conflicting_appointments': conflicts,
        'total_conflicts': len(conflicts),
    }
