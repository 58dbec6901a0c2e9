from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import ClinicContext, get_clinic_context
from clinic_backend.database import get_db
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.scheduling import clinic_time
from clinic_backend.scheduling.generation_range import get_slot_generation_range
from clinic_backend.scheduling.schedule_config import clinic_timezone, get_doctor
from clinic_backend.scheduling.slot_generation import get_slots_summary, preview_slots_for_range
from clinic_backend.scheduling.slot_queries import (
    get_available_slots,
    get_slot_stats,
    get_slots_for_date,
    get_slots_for_range,
)

router = APIRouter(tags=['slots'])


class AvailableSlotResponse(BaseModel):
    id: int
    date: str
    time: str
    starts_at: datetime
    ends_at: datetime
    shift_name: str


@router.get('/doctors/{doctor_id}/slots')
def list_slots_for_date(
    doctor_id: int,
    date: str = Query(...),
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_doctor(db, context.clinic_id, doctor_id)
        return get_slots_for_date(db, context.clinic_id, doctor_id, date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots/available', response_model=list[AvailableSlotResponse])
def list_available_slots(
    doctor_id: int,
    date: str = Query(...),
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        doctor = get_doctor(db, context.clinic_id, doctor_id)
        timezone = clinic_timezone(doctor.clinic)
        return [
            AvailableSlotResponse(
                id=slot.id,
                date=clinic_time.format_date(slot.date),
                time=clinic_time.utc_to_local_time(slot.starts_at, timezone),
                starts_at=slot.starts_at,
                ends_at=slot.ends_at,
                shift_name=slot.shift_name.value,
            )
            for slot in get_available_slots(db, context.clinic_id, doctor_id, date)
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots/range')
def list_slots_for_range(
    doctor_id: int,
    start_date: str = Query(...),
    end_date: str = Query(...),
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_doctor(db, context.clinic_id, doctor_id)
        return get_slots_for_range(db, context.clinic_id, doctor_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots/stats')
def read_slot_stats(
    doctor_id: int,
    start_date: str = Query(...),
    end_date: str = Query(...),
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_doctor(db, context.clinic_id, doctor_id)
        return get_slot_stats(db, context.clinic_id, doctor_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots/preview')
def preview_slots(
    doctor_id: int,
    start_date: str = Query(...),
    end_date: str = Query(...),
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return preview_slots_for_range(db, context.clinic_id, doctor_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots/summary')
def read_slots_summary(
    doctor_id: int,
    start_date: str = Query(...),
    end_date: str = Query(...),
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_slots_summary(db, context.clinic_id, doctor_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots/generation-range')
def read_generation_range(
    doctor_id: int,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        get_doctor(db, context.clinic_id, doctor_id)
        return get_slot_generation_range(db, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
