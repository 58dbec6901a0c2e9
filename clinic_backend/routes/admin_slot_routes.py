from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import require_platform_admin
from clinic_backend.database import get_db
from clinic_backend.models.user import User
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.scheduling import admin_slots
from clinic_backend.scheduling.regeneration import regenerate_slots_after_schedule_change

router = APIRouter(tags=['admin-slots'])


class GenerateSlotsRequest(BaseModel):
    start_date: str | None = None
    end_date: str | None = None


class DateRangeRequest(BaseModel):
    start_date: str
    end_date: str


@router.post('/slots/generate')
def generate_slots_for_all_clinics(
    year: int | None = Query(default=None),
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.bulk_generate_slots_for_all_clinics(db, year)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{clinic_id}/slots/status')
def read_clinic_slot_status(
    clinic_id: int,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.get_clinic_slot_status(db, clinic_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{clinic_id}/slots/generate')
def generate_clinic_slots(
    clinic_id: int,
    year: int | None = Query(default=None),
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.bulk_generate_slots_for_clinic(db, clinic_id, year)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{clinic_id}/doctors/{doctor_id}/slots/generate')
def generate_doctor_slots(
    clinic_id: int,
    doctor_id: int,
    data: GenerateSlotsRequest,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.generate_slots_for_doctor(db, clinic_id, doctor_id, data.start_date, data.end_date)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{clinic_id}/doctors/{doctor_id}/slots/delete-range')
def delete_doctor_slots(
    clinic_id: int,
    doctor_id: int,
    data: DateRangeRequest,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.delete_slots_in_range(db, clinic_id, doctor_id, data.start_date, data.end_date)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{clinic_id}/doctors/{doctor_id}/slots/force-delete-range')
def force_delete_doctor_slots(
    clinic_id: int,
    doctor_id: int,
    data: DateRangeRequest,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.force_delete_slots_in_range(db, clinic_id, doctor_id, data.start_date, data.end_date)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{clinic_id}/doctors/{doctor_id}/slots/future')
def clear_doctor_future_slots(
    clinic_id: int,
    doctor_id: int,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.clear_future_slots(db, clinic_id, doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{clinic_id}/doctors/{doctor_id}/slots/regenerate')
def regenerate_doctor_slots(
    clinic_id: int,
    doctor_id: int,
    cancel_impacted: bool = Query(default=False),
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return regenerate_slots_after_schedule_change(db, clinic_id, doctor_id, cancel_impacted=cancel_impacted)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{clinic_id}/doctors/{doctor_id}/license/assign')
def assign_doctor_license(
    clinic_id: int,
    doctor_id: int,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.assign_license(db, clinic_id, doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{clinic_id}/doctors/{doctor_id}/license/revoke')
def revoke_doctor_license(
    clinic_id: int,
    doctor_id: int,
    admin: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return admin_slots.revoke_license(db, clinic_id, doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
