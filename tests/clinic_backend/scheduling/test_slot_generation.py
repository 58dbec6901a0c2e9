from datetime import datetime

import pytest

from clinic_backend.core.errors import BadRequestError, NotFoundError
from clinic_backend.models.slot import Slot, SlotStatus
from clinic_backend.scheduling.appointment_flows import create_appointment
from clinic_backend.scheduling.generation_range import get_slot_generation_range
from clinic_backend.scheduling.slot_generation import (
    generate_slots_for_range,
    get_slots_summary,
    preview_slots_for_range,
)

NOW = datetime(2030, 1, 1, 18, 0)


@pytest.fixture
def doctor(db, frozen_now, make_clinic, make_doctor):
    frozen_now(NOW)
    return make_doctor(make_clinic())


def test_generation_creates_slots_and_records_the_window(db, doctor, slot_count) -> None:
    result = generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-13')

    assert result == {
        'slots_created': 25,
        'slots_skipped': 0,
        'start_date': '2030-01-07',
        'end_date': '2030-01-13',
    }
    assert slot_count(doctor.id) == 25
    db.refresh(doctor)
    assert doctor.schedule_configured_at == NOW
    assert get_slot_generation_range(db, doctor.id) == {'from': '2030-01-07', 'to': '2030-01-13'}


def test_generation_window_grows_to_cover_every_request(db, doctor) -> None:
    generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-14', '2030-01-15')
    generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-08')

    assert get_slot_generation_range(db, doctor.id) == {'from': '2030-01-07', 'to': '2030-01-15'}


def test_generation_range_is_empty_before_any_generation(db, doctor) -> None:
    assert get_slot_generation_range(db, doctor.id) == {'from': None, 'to': None}


def test_regenerating_a_range_replaces_available_slots_only(db, doctor, make_patient, slot_count) -> None:
    patient = make_patient(doctor.clinic)
    generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-07')
    first_slot = db.query(Slot).filter(Slot.doctor_id == doctor.id).order_by(Slot.starts_at.asc()).first()
    appointment = create_appointment(db, doctor.clinic_id, doctor.id, patient.id, slot_id=first_slot.id)

    result = generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-07')

    assert result['slots_created'] == 4
    assert result['slots_skipped'] == 1
    assert slot_count(doctor.id) == 5
    assert db.get(Slot, first_slot.id).appointment_id == appointment.id


def test_generation_requires_a_fully_configured_schedule(db, frozen_now, make_clinic, make_doctor) -> None:
    frozen_now(NOW)
    doctor = make_doctor(make_clinic(), shifts={})

    with pytest.raises(BadRequestError) as exception_info:
        generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-13')

    assert exception_info.value.detail == (
        'Doctor schedule is not fully configured. '
        'Please set duration, shift templates, and weekly schedule first.'
    )


def test_generation_skips_inactive_doctors(db, frozen_now, make_clinic, make_doctor) -> None:
    frozen_now(NOW)
    doctor = make_doctor(make_clinic(), is_active=False)

    with pytest.raises(NotFoundError):
        generate_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-07', '2030-01-13')


@pytest.mark.parametrize(
    ('start_date', 'end_date', 'message'),
    [
        ('2030-01-13', '2030-01-07', 'Start date must be before or equal to end date'),
        ('2030-01-01', '2031-01-02', 'Date range cannot exceed 366 days'),
    ],
)
def test_generation_rejects_bad_ranges(db, doctor, start_date, end_date, message) -> None:
    with pytest.raises(BadRequestError) as exception_info:
        generate_slots_for_range(db, doctor.clinic_id, doctor.id, start_date, end_date)

    assert exception_info.value.detail == message


def test_preview_marks_taken_times_without_writing(db, frozen_now, make_clinic, make_doctor, make_patient, make_appointment, slot_count) -> None:
    frozen_now(NOW)
    clinic = make_clinic()
    doctor = make_doctor(clinic, has_license=False)
    make_appointment(doctor, make_patient(clinic), datetime(2030, 1, 7, 15, 30))

    preview = preview_slots_for_range(db, clinic.id, doctor.id, '2030-01-06', '2030-01-07')

    assert preview['timezone'] == 'America/Chicago'
    assert preview['doctor_duration_min'] == 30
    assert [day['date'] for day in preview['days']] == ['2030-01-06', '2030-01-07']
    assert preview['days'][0]['slots'] == []
    monday = preview['days'][1]['slots']
    assert [slot['time'] for slot in monday] == ['09:00', '09:30', '10:00', '10:30', '11:00']
    assert [slot['is_available'] for slot in monday] == [True, False, True, True, True]
    assert {slot['shift'] for slot in monday} == {'MORNING'}
    assert slot_count(doctor.id) == 0


def test_preview_range_is_limited(db, doctor) -> None:
    with pytest.raises(BadRequestError) as exception_info:
        preview_slots_for_range(db, doctor.clinic_id, doctor.id, '2030-01-01', '2030-02-15')

    assert exception_info.value.detail == 'Date range cannot exceed 31 days'


def test_summary_counts_working_days_and_taken_slots(db, doctor, make_patient, make_appointment) -> None:
    make_appointment(doctor, make_patient(doctor.clinic), datetime(2030, 1, 8, 16, 0))

    summary = get_slots_summary(db, doctor.clinic_id, doctor.id, '2030-01-06', '2030-01-12')

    assert summary == {
        'total_days': 7,
        'working_days': 5,
        'total_slots': 25,
        'available_slots': 24,
        'booked_slots': 1,
        'timezone': 'America/Chicago',
        'doctor_duration_min': 30,
    }
    assert db.query(Slot).filter(Slot.status == SlotStatus.AVAILABLE).count() == 0
