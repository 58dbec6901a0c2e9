"""Slot status transitions that track appointment creation and cancellation.

None of these helpers commit. Callers run them in the same transaction as the
appointment write they belong to.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from clinic_backend.core.errors import ConflictError, NotFoundError
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.slot import Slot, SlotStatus

logger = logging.getLogger(__name__)


def book_slot(db: Session, slot_id: int, appointment_id: int) -> Slot:
    """Claim an AVAILABLE slot for an appointment.

    The status check and the write are one conditional UPDATE, so of two
    sessions racing for the same slot exactly one sees a matched row.
    """
    result = db.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.status == SlotStatus.AVAILABLE)
        .values(status=SlotStatus.BOOKED, appointment_id=appointment_id)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        if db.get(Slot, slot_id) is None:
            raise NotFoundError('Slot not found')
        raise ConflictError({'message': 'Slot is no longer available', 'code': 'SLOT_NOT_AVAILABLE', 'slot_id': slot_id})

    return db.get(Slot, slot_id, populate_existing=True)


def release_slot(db: Session, appointment_id: int) -> Slot | None:
    slot = db.query(Slot).filter(Slot.appointment_id == appointment_id).first()
    if slot is None:
        return None

    slot.status = SlotStatus.AVAILABLE
    slot.appointment_id = None
    db.flush()
    return slot


def find_slot_by_time(db: Session, doctor_id: int, starts_at: datetime) -> Slot | None:
    return db.query(Slot).filter(Slot.doctor_id == doctor_id, Slot.starts_at == starts_at).first()


def delete_available_slots(db: Session, clinic_id: int, doctor_id: int, start: date, end: date) -> int:
    """Remove AVAILABLE slots dated ``start``..``end``. BOOKED and BLOCKED slots stay."""
    return db.query(Slot).filter(
        Slot.clinic_id == clinic_id,
        Slot.doctor_id == doctor_id,
        Slot.date >= start,
        Slot.date <= end,
        Slot.status == SlotStatus.AVAILABLE,
    ).delete(synchronize_session=False)


def cancel_appointments(db: Session, appointment_ids: Iterable[int]) -> list[int]:
    """Cancel BOOKED appointments and free their slots. Returns the ids cancelled."""
    cancelled: list[int] = []
    for appointment_id in appointment_ids:
        appointment = db.get(Appointment, appointment_id)
        if appointment is None or appointment.status != AppointmentStatus.BOOKED:
            continue

        appointment.status = AppointmentStatus.CANCELLED
        release_slot(db, appointment.id)
        cancelled.append(appointment.id)

    if cancelled:
        db.flush()
        logger.info('Cancelled appointments %s and released their slots', cancelled)
    return cancelled
