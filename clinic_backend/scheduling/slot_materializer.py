"""Expansion of recurring configuration into persisted AVAILABLE slots."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import RetryableStorageError
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.schedule import ShiftName
from clinic_backend.models.slot import Slot, SlotStatus
from clinic_backend.scheduling import clinic_time
from clinic_backend.scheduling.schedule_config import ScheduleSnapshot, load_snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedSlot:
    date: date
    starts_at: datetime
    ends_at: datetime
    shift_name: ShiftName


@dataclass(frozen=True)
class MaterializationResult:
    created: int
    skipped: int


def can_materialize(snapshot: ScheduleSnapshot, require_license: bool = True) -> bool:
    if require_license and not snapshot.has_license:
        return False
    return snapshot.duration_min > 0 and bool(snapshot.templates) and snapshot.has_enabled_shift()


def _is_wall_clock_reading(starts_at: datetime, day: date, minutes: int, timezone: str) -> bool:
    # Readings inside a spring-forward gap resolve to a later wall time.
    day_offset, minute_of_day = divmod(minutes, clinic_time.MINUTES_PER_DAY)
    expected_date = clinic_time.format_date(day + timedelta(days=day_offset))
    return (
        clinic_time.utc_to_local_date(starts_at, timezone) == expected_date
        and clinic_time.utc_to_local_time(starts_at, timezone) == clinic_time.minutes_to_time(minute_of_day)
    )


def plan_slots(
    snapshot: ScheduleSnapshot,
    start: date,
    end: date,
    require_license: bool = True,
) -> list[PlannedSlot]:
    """Every slot the configuration yields for clinic-local dates ``start``..``end``.

    Slots after midnight of an overnight shift start on the next calendar day
    but keep the shift's own date in ``date``. Wall times that do not exist on
    a daylight-saving transition day are left out.
    """
    if not can_materialize(snapshot, require_license=require_license):
        return []

    duration = snapshot.duration_min
    timezone = snapshot.timezone
    planned: list[PlannedSlot] = []

    for day in clinic_time.iter_dates(start, end):
        if snapshot.is_time_off(day):
            continue

        day_of_week = clinic_time.day_of_week(day, timezone)
        for shift_name in snapshot.enabled_shifts(day_of_week):
            window = snapshot.templates.get(shift_name)
            if window is None:
                continue

            cursor = window.start_minutes
            range_end = window.range_end_minutes
            while cursor + duration <= range_end:
                starts_at = clinic_time.local_minutes_to_utc(day, cursor, timezone)
                ends_at = clinic_time.local_minutes_to_utc(day, cursor + duration, timezone)
                if ends_at > starts_at and _is_wall_clock_reading(starts_at, day, cursor, timezone):
                    planned.append(
                        PlannedSlot(date=day, starts_at=starts_at, ends_at=ends_at, shift_name=shift_name)
                    )
                cursor += duration

    return planned


def _insert_statement(db: Session):
    dialect_name = db.get_bind().dialect.name
    if dialect_name == 'postgresql':
        return postgresql_insert(Slot.__table__)
    if dialect_name == 'sqlite':
        return sqlite_insert(Slot.__table__)
    raise RuntimeError(f'Unsupported database dialect for slot inserts: {dialect_name}')


def _insert_chunk(db: Session, rows: list[dict]) -> int:
    statement = _insert_statement(db).values(rows).on_conflict_do_nothing(
        index_elements=['doctor_id', 'starts_at'],
    )
    result = db.execute(statement)
    db.commit()
    return max(result.rowcount or 0, 0)


def occupied_intervals(db: Session, doctor_id: int, planned: list[PlannedSlot]) -> list[tuple[datetime, datetime]]:
    """Time already taken by the doctor's BOOKED/BLOCKED slots and active appointments."""
    if not planned:
        return []

    window_start = min(slot.starts_at for slot in planned)
    window_end = max(slot.ends_at for slot in planned)

    held_slots = db.query(Slot.starts_at, Slot.ends_at).filter(
        Slot.doctor_id == doctor_id,
        Slot.status != SlotStatus.AVAILABLE,
        Slot.starts_at < window_end,
        Slot.ends_at > window_start,
    )
    appointments = db.query(Appointment.starts_at, Appointment.ends_at).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status == AppointmentStatus.BOOKED,
        Appointment.starts_at < window_end,
        Appointment.ends_at > window_start,
    )
    return [(starts_at, ends_at) for starts_at, ends_at in held_slots.all() + appointments.all()]


def drop_occupied(planned: list[PlannedSlot], occupied: list[tuple[datetime, datetime]]) -> list[PlannedSlot]:
    if not occupied:
        return planned
    return [
        slot
        for slot in planned
        if not any(slot.starts_at < ends_at and starts_at < slot.ends_at for starts_at, ends_at in occupied)
    ]


def persist_planned_slots(db: Session, clinic_id: int, doctor_id: int, planned: list[PlannedSlot]) -> int:
    """Write slots in chunks; duplicates on (doctor, start) are skipped.

    Each chunk commits on its own and is retried on its own, so the session must
    not carry uncommitted work from the caller.
    """
    rows = [
        {
            'clinic_id': clinic_id,
            'doctor_id': doctor_id,
            'date': slot.date,
            'starts_at': slot.starts_at,
            'ends_at': slot.ends_at,
            'shift_name': slot.shift_name,
            'status': SlotStatus.AVAILABLE,
        }
        for slot in planned
    ]

    created = 0
    chunk_size = config.SLOT_INSERT_BATCH_SIZE
    max_attempts = config.SLOT_INSERT_MAX_ATTEMPTS

    for offset in range(0, len(rows), chunk_size):
        chunk = rows[offset:offset + chunk_size]
        for attempt in range(1, max_attempts + 1):
            try:
                created += _insert_chunk(db, chunk)
                break
            except OperationalError as exc:
                db.rollback()
                if attempt == max_attempts:
                    raise RetryableStorageError(
                        'Slot generation was interrupted. Re-run generation for the same range.'
                    ) from exc
                logger.warning(
                    'Slot insert chunk failed for doctor %s (attempt %s of %s); retrying',
                    doctor_id,
                    attempt,
                    max_attempts,
                )

    return created


def generate_and_persist_slots(
    db: Session,
    clinic_id: int,
    doctor_id: int,
    start_date: str | date,
    end_date: str | date,
) -> MaterializationResult:
    start = clinic_time.parse_date(start_date)
    end = clinic_time.parse_date(end_date)

    snapshot = load_snapshot(db, clinic_id, doctor_id, active_only=True)
    if not can_materialize(snapshot):
        logger.info('Doctor %s has no licensed, configured schedule; no slots generated', doctor_id)
        return MaterializationResult(created=0, skipped=0)

    planned = plan_slots(snapshot, start, end)
    free = drop_occupied(planned, occupied_intervals(db, doctor_id, planned))
    created = persist_planned_slots(db, clinic_id, doctor_id, free)
    result = MaterializationResult(created=created, skipped=len(planned) - created)

    logger.info(
        'Generated slots for doctor %s from %s to %s: %s created, %s skipped',
        doctor_id,
        start,
        end,
        result.created,
        result.skipped,
    )
    return result
