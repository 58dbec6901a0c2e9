from datetime import date, datetime

import pytest

from clinic_backend.core.errors import BadRequestError, ConflictError, NotFoundError
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.schedule import TimeOff
from clinic_backend.models.slot import Slot, SlotStatus
from clinic_backend.scheduling.appointment_flows import create_appointment
from clinic_backend.scheduling.slot_generation import generate_slots_for_range
from clinic_backend.scheduling.time_off import (
    create_time_off,
    delete_slots_for_date_range,
    delete_time_off,
    force_delete_slots_for_date_range,
)

NOW = datetime(2030, 1, 1, 18, 0)
TUESDAY_TEN = datetime(2030, 1, 8, 16, 0)


@pytest.fixture
def working_week(db, frozen_now, make_clinic, make_doctor, make_patient):
    """Mon-Fri 2030-01-07..11, five 30-minute slots a day from 09:00 Chicago."""
    frozen_now(NOW)
    clinic = make_clinic()
    doctor = make_doctor(clinic)
    patient = make_patient(clinic)
    generate_slots_for_range(db, clinic.id, doctor.id, '2030-01-07', '2030-01-11')
    return doctor, patient


def book_tuesday_ten(db, doctor, patient) -> Appointment:
    slot = db.query(Slot).filter(Slot.doctor_id == doctor.id, Slot.starts_at == TUESDAY_TEN).one()
    return create_appointment(db, doctor.clinic_id, doctor.id, patient.id, slot_id=slot.id)


def test_time_off_without_bookings_removes_available_slots(db, working_week, slot_count) -> None:
    doctor, _ = working_week

    result = create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-08', '2030-01-09', 'VACATION', reason='Conference')

    assert result['slots_deleted'] == 10
    assert result['booked_appointments'] == []
    assert result['appointments_cancelled'] == 0
    assert result['time_off']['start_date'] == '2030-01-08'
    assert result['time_off']['end_date'] == '2030-01-09'
    assert result['time_off']['type'] == 'VACATION'
    assert result['time_off']['reason'] == 'Conference'
    assert slot_count(doctor.id) == 15


def test_time_off_over_bookings_is_rejected_and_rolled_back(db, working_week, slot_count) -> None:
    doctor, patient = working_week
    appointment = book_tuesday_ten(db, doctor, patient)

    with pytest.raises(ConflictError) as exception_info:
        create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-08', '2030-01-08', 'BREAK')

    detail = exception_info.value.detail
    assert exception_info.value.status_code == 409
    assert detail['code'] == 'BOOKED_SLOTS_EXIST'
    assert detail['total_booked'] == 1
    assert detail['booked_appointments'][0]['id'] == appointment.id
    assert detail['booked_appointments'][0]['reason'] == 'Time-off added for this date'
    assert db.query(TimeOff).count() == 0
    assert slot_count(doctor.id) == 25


def test_forced_time_off_cancels_bookings_and_clears_the_range(db, working_week, slot_count) -> None:
    doctor, patient = working_week
    appointment = book_tuesday_ten(db, doctor, patient)

    result = create_time_off(
        db,
        doctor.clinic_id,
        doctor.id,
        '2030-01-08',
        '2030-01-08',
        'OTHER',
        force_delete=True,
    )

    assert result['appointments_cancelled'] == 1
    assert result['slots_deleted'] == 4
    assert [booked['id'] for booked in result['booked_appointments']] == [appointment.id]
    assert db.get(Appointment, appointment.id).status == AppointmentStatus.CANCELLED
    assert slot_count(doctor.id, date=date(2030, 1, 8)) == 0
    assert slot_count(doctor.id) == 20


def test_unslotted_booking_also_blocks_time_off(db, working_week, make_appointment) -> None:
    doctor, patient = working_week
    make_appointment(doctor, patient, datetime(2030, 1, 10, 22, 0))

    with pytest.raises(ConflictError) as exception_info:
        create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-10', '2030-01-10', 'BREAK')

    assert exception_info.value.detail['total_booked'] == 1


def test_unknown_time_off_type_is_rejected(db, working_week) -> None:
    doctor, _ = working_week

    with pytest.raises(BadRequestError) as exception_info:
        create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-08', '2030-01-08', 'HOLIDAY')

    assert exception_info.value.detail == 'type must be one of: BREAK, VACATION, OTHER'


def test_reversed_time_off_range_is_rejected(db, working_week) -> None:
    doctor, _ = working_week

    with pytest.raises(BadRequestError) as exception_info:
        create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-09', '2030-01-08', 'BREAK')

    assert exception_info.value.detail == 'start_date must be before or equal to end_date'


def test_deleting_time_off_restores_slots_inside_the_window(db, working_week, slot_count) -> None:
    doctor, _ = working_week
    created = create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-08', '2030-01-15', 'VACATION')

    result = delete_time_off(db, doctor.clinic_id, doctor.id, created['time_off']['id'])

    assert result == {'slots_restored': 20}
    assert db.query(TimeOff).count() == 0
    assert slot_count(doctor.id) == 25


def test_deleting_time_off_does_not_restore_past_dates(db, working_week, frozen_now, slot_count) -> None:
    doctor, _ = working_week
    created = create_time_off(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-09', 'VACATION')
    frozen_now(datetime(2030, 1, 8, 18, 0))

    result = delete_time_off(db, doctor.clinic_id, doctor.id, created['time_off']['id'])

    assert result == {'slots_restored': 10}
    assert slot_count(doctor.id, date=date(2030, 1, 7)) == 0


def test_deleting_unknown_time_off_is_not_found(db, working_week) -> None:
    doctor, _ = working_week

    with pytest.raises(NotFoundError) as exception_info:
        delete_time_off(db, doctor.clinic_id, doctor.id, 4040)

    assert exception_info.value.detail == 'Time off entry not found'


def test_delete_slots_for_date_range_reports_remaining_bookings(db, working_week) -> None:
    doctor, patient = working_week
    appointment = book_tuesday_ten(db, doctor, patient)

    result = delete_slots_for_date_range(db, doctor.clinic_id, doctor.id, '2030-01-08', '2030-01-08')
    db.commit()

    assert result['deleted_count'] == 4
    assert [booked['id'] for booked in result['booked_appointments']] == [appointment.id]
    assert db.query(Slot).filter(Slot.date == date(2030, 1, 8)).one().status == SlotStatus.BOOKED


def test_force_delete_slots_for_date_range_removes_booked_slots(db, working_week, slot_count) -> None:
    doctor, patient = working_week
    appointment = book_tuesday_ten(db, doctor, patient)

    result = force_delete_slots_for_date_range(db, doctor.clinic_id, doctor.id, '2030-01-08', '2030-01-08')
    db.commit()

    assert result == {'deleted_slots': 5, 'cancelled_appointments': 1}
    assert db.get(Appointment, appointment.id).status == AppointmentStatus.CANCELLED
    assert slot_count(doctor.id, date=date(2030, 1, 8)) == 0
