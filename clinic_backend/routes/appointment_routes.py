from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import ClinicContext, get_clinic_context
from clinic_backend.database import get_db
from clinic_backend.models.appointment import AppointmentStatus
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.scheduling.appointment_flows import (
    cancel_appointment,
    create_appointment,
    reschedule_appointment,
)

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_REASON_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    patient_id: int
    slot_id: int | None = None
    starts_at: datetime | None = None
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_APPOINTMENT_REASON_LENGTH} characters or fewer.')

        return normalized


class RescheduleAppointmentRequest(BaseModel):
    slot_id: int | None = None
    starts_at: datetime | None = None


class AppointmentResponse(BaseModel):
    id: int
    clinic_id: int
    doctor_id: int
    patient_id: int
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus
    reason: str | None = None

    class Config:
        from_attributes = True


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: CreateAppointmentRequest,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return create_appointment(
            db,
            context.clinic_id,
            data.doctor_id,
            data.patient_id,
            slot_id=data.slot_id,
            starts_at=data.starts_at,
            reason=data.reason,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_booked_appointment(
    appointment_id: int,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return cancel_appointment(db, context.clinic_id, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/appointments/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_booked_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    context: ClinicContext = Depends(get_clinic_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return reschedule_appointment(
            db,
            context.clinic_id,
            appointment_id,
            slot_id=data.slot_id,
            starts_at=data.starts_at,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
