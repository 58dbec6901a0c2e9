from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import ClinicContext, get_clinic_context, require_manager
from clinic_backend.database import get_db
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.scheduling.conflicts import check_schedule_conflicts, get_impacted_appointments
from clinic_backend.scheduling.schedule_changes import (
    update_doctor_schedule,
    update_schedule_with_conflict_resolution,
)
from clinic_backend.scheduling.schedule_config import ScheduleChange, get_doctor_schedule
from clinic_backend.scheduling.time_off import create_time_off, delete_time_off

router = APIRouter(tags=['doctor-schedule'])

MAX_TIME_OFF_REASON_LENGTH = 600


class ScheduleConflictCheckRequest(ScheduleChange):
    start_date: str | None = None
    end_date: str | None = None


class ScheduleConflictResolutionRequest(ScheduleChange):
    cancel_conflicting: bool = False
    appointment_ids_to_cancel: list[int] | None = None


class CreateTimeOffRequest(BaseModel):
    start_date: str
    end_date: str
    type: str
    reason: str | None = None
    force_delete: bool = False

    @field_validator('type')
    @classmethod
    def normalize_type(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_TIME_OFF_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_TIME_OFF_REASON_LENGTH} characters or fewer.')

        return normalized


def _schedule_fields(data: ScheduleChange) -> ScheduleChange:
    return ScheduleChange(
        appointment_duration_min=data.appointment_duration_min,
        shift_template=data.shift_template,
        weekly=data.weekly,
    )


@router.get('/doctors/{doctor_id}/schedule')
def read_doctor_schedule(
    doctor_id: int,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_doctor_schedule(db, context.clinic_id, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/doctors/{doctor_id}/schedule')
def update_schedule(
    doctor_id: int,
    data: ScheduleChange,
    context: ClinicContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return update_doctor_schedule(db, context.clinic_id, doctor_id, data)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/doctors/{doctor_id}/schedule/check-conflicts')
def check_conflicts(
    doctor_id: int,
    data: ScheduleConflictCheckRequest,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return check_schedule_conflicts(
            db,
            context.clinic_id,
            doctor_id,
            _schedule_fields(data),
            start_date=data.start_date,
            end_date=data.end_date,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/doctors/{doctor_id}/schedule/preview-impact')
def preview_schedule_impact(
    doctor_id: int,
    data: ScheduleChange,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_impacted_appointments(db, context.clinic_id, doctor_id, data)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/doctors/{doctor_id}/schedule/with-conflicts')
def update_schedule_resolving_conflicts(
    doctor_id: int,
    data: ScheduleConflictResolutionRequest,
    context: ClinicContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return update_schedule_with_conflict_resolution(
            db,
            context.clinic_id,
            doctor_id,
            _schedule_fields(data),
            cancel_conflicting=data.cancel_conflicting,
            appointment_ids_to_cancel=data.appointment_ids_to_cancel,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/doctors/{doctor_id}/timeoff', status_code=status.HTTP_201_CREATED)
def add_doctor_time_off(
    doctor_id: int,
    data: CreateTimeOffRequest,
    context: ClinicContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return create_time_off(
            db,
            context.clinic_id,
            doctor_id,
            data.start_date,
            data.end_date,
            data.type,
            reason=data.reason,
            force_delete=data.force_delete,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/doctors/{doctor_id}/timeoff/{time_off_id}')
def remove_doctor_time_off(
    doctor_id: int,
    time_off_id: int,
    context: ClinicContext = Depends(require_manager),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return delete_time_off(db, context.clinic_id, doctor_id, time_off_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
