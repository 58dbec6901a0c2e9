"""Read access to materialized slots, keyed by clinic-local calendar date."""

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from clinic_backend.models.appointment import Appointment
from clinic_backend.models.slot import Slot, SlotStatus
from clinic_backend.scheduling import clinic_time


def serialize_slot(slot: Slot, timezone: str | None = None) -> dict:
    payload = {
        'id': slot.id,
        'date': clinic_time.format_date(slot.date),
        'starts_at': slot.starts_at,
        'ends_at': slot.ends_at,
        'shift_name': slot.shift_name.value,
        'status': slot.status.value,
        'appointment_id': slot.appointment_id,
    }
    if timezone:
        payload['time'] = clinic_time.utc_to_local_time(slot.starts_at, timezone)
    return payload


def _slot_query(db: Session, clinic_id: int, doctor_id: int):
    return db.query(Slot).filter(Slot.clinic_id == clinic_id, Slot.doctor_id == doctor_id)


def get_available_slots(db: Session, clinic_id: int, doctor_id: int, date_value) -> list[Slot]:
    day = clinic_time.date_only_to_storage(date_value)
    return _slot_query(db, clinic_id, doctor_id).filter(
        Slot.date == day,
        Slot.status == SlotStatus.AVAILABLE,
    ).order_by(Slot.starts_at.asc()).all()


def get_slots_for_date(db: Session, clinic_id: int, doctor_id: int, date_value) -> list[dict]:
    """All slots of a date, with appointment and patient details for booked ones."""
    day = clinic_time.date_only_to_storage(date_value)
    slots = _slot_query(db, clinic_id, doctor_id).options(
        joinedload(Slot.appointment).joinedload(Appointment.patient),
    ).filter(Slot.date == day).order_by(Slot.starts_at.asc()).all()

    results = []
    for slot in slots:
        payload = serialize_slot(slot)
        appointment = slot.appointment
        payload['appointment'] = None
        if appointment is not None:
            patient = appointment.patient
            payload['appointment'] = {
                'id': appointment.id,
                'reason': appointment.reason,
                'status': appointment.status.value,
                'patient': {
                    'id': patient.id,
                    'full_name': patient.full_name,
                    'phone': patient.phone,
                } if patient else None,
            }
        results.append(payload)
    return results


def get_slots_for_range(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> list[dict]:
    """Slots grouped by date; every date in the range appears, even with no slots."""
    start = clinic_time.date_only_to_storage(start_date)
    end = clinic_time.date_only_to_storage(end_date)

    slots = _slot_query(db, clinic_id, doctor_id).filter(
        Slot.date >= start,
        Slot.date <= end,
    ).order_by(Slot.date.asc(), Slot.starts_at.asc()).all()

    by_date: dict = {day: [] for day in clinic_time.iter_dates(start, end)}
    for slot in slots:
        by_date.setdefault(slot.date, []).append(serialize_slot(slot))

    return [{'date': clinic_time.format_date(day), 'slots': day_slots} for day, day_slots in by_date.items()]


def get_slot_stats(db: Session, clinic_id: int, doctor_id: int, start_date, end_date) -> dict:
    start = clinic_time.date_only_to_storage(start_date)
    end = clinic_time.date_only_to_storage(end_date)

    rows = db.query(Slot.status, func.count(Slot.id)).filter(
        Slot.clinic_id == clinic_id,
        Slot.doctor_id == doctor_id,
        Slot.date >= start,
        Slot.date <= end,
    ).group_by(Slot.status).all()

    counts = {status: count for status, count in rows}
    return {
        'total_slots': sum(counts.values()),
        'available_slots': counts.get(SlotStatus.AVAILABLE, 0),
        'booked_slots': counts.get(SlotStatus.BOOKED, 0),
        'blocked_slots': counts.get(SlotStatus.BLOCKED, 0),
    }
