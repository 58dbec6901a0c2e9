from datetime import datetime

import pytest
from pydantic import ValidationError

from clinic_backend.models.schedule import TimeOff
from clinic_backend.routes.doctor_schedule_routes import CreateTimeOffRequest


@pytest.fixture
def clinic_with_staff(make_clinic, make_doctor, make_user):
    clinic = make_clinic()
    doctor = make_doctor(clinic)
    manager = make_user('manager@riverside.example', memberships={clinic.id: 'CLINIC_MANAGER'})
    staff = make_user('staff@riverside.example', memberships={clinic.id: 'CLINIC_STAFF'})
    return clinic, doctor, manager, staff


def test_create_time_off_request_normalizes_fields() -> None:
    request = CreateTimeOffRequest(start_date='2030-01-08', end_date='2030-01-09', type=' vacation ', reason='  Away  ')

    assert request.type == 'VACATION'
    assert request.reason == 'Away'


def test_create_time_off_request_rejects_long_reasons() -> None:
    with pytest.raises(ValidationError):
        CreateTimeOffRequest(start_date='2030-01-08', end_date='2030-01-09', type='OTHER', reason='x' * 601)


def test_staff_can_read_the_schedule_of_their_clinic(client, clinic_with_staff, auth_headers) -> None:
    _, doctor, _, staff = clinic_with_staff

    response = client.get(f'/v1/doctors/{doctor.id}/schedule', headers=auth_headers(staff))

    assert response.status_code == 200
    body = response.json()
    assert body['doctor']['id'] == doctor.id
    assert body['shift_template']['MORNING'] == {'start': '09:00', 'end': '11:30'}
    assert body['weekly'][1]['shifts'] == {'MORNING': True, 'AFTERNOON': False}


def test_staff_cannot_change_the_schedule(client, clinic_with_staff, auth_headers) -> None:
    _, doctor, _, staff = clinic_with_staff

    response = client.put(
        f'/v1/doctors/{doctor.id}/schedule',
        json={'appointment_duration_min': 20},
        headers=auth_headers(staff),
    )

    assert response.status_code == 403
    assert response.json() == {'detail': 'Manager role required'}


def test_manager_updates_the_schedule(client, clinic_with_staff, auth_headers) -> None:
    _, doctor, manager, _ = clinic_with_staff

    response = client.put(
        f'/v1/doctors/{doctor.id}/schedule',
        json={'appointment_duration_min': 20},
        headers=auth_headers(manager),
    )

    assert response.status_code == 200
    assert response.json()['schedule']['doctor']['appointment_duration_min'] == 20


def test_invalid_duration_is_a_bad_request(client, clinic_with_staff, auth_headers) -> None:
    _, doctor, manager, _ = clinic_with_staff

    response = client.put(
        f'/v1/doctors/{doctor.id}/schedule',
        json={'appointment_duration_min': 500},
        headers=auth_headers(manager),
    )

    assert response.status_code == 400
    assert response.json() == {'detail': 'appointment_duration_min must be between 5 and 240 minutes'}


def test_unknown_doctor_is_not_found(client, clinic_with_staff, auth_headers) -> None:
    _, _, _, staff = clinic_with_staff

    response = client.get('/v1/doctors/9999/schedule', headers=auth_headers(staff))

    assert response.status_code == 404
    assert response.json() == {'detail': 'Doctor not found'}


def test_check_conflicts_reports_affected_bookings(
    client,
    clinic_with_staff,
    auth_headers,
    frozen_now,
    make_patient,
    make_appointment,
) -> None:
    clinic, doctor, _, staff = clinic_with_staff
    frozen_now(datetime(2030, 1, 1, 18, 0))
    appointment = make_appointment(doctor, make_patient(clinic), datetime(2030, 1, 7, 15, 0))

    response = client.post(
        f'/v1/doctors/{doctor.id}/schedule/check-conflicts',
        json={'weekly': [{'day_of_week': 1, 'shifts': {'MORNING': False}}], 'start_date': '2030-01-07'},
        headers=auth_headers(staff),
    )

    assert response.status_code == 200
    body = response.json()
    assert body['total_conflicts'] == 1
    assert body['conflicting_appointments'][0]['id'] == appointment.id
    assert body['conflicting_appointments'][0]['starts_at'] == '2030-01-07T15:00:00'


def test_time_off_over_bookings_returns_conflict(
    client,
    db,
    clinic_with_staff,
    auth_headers,
    make_patient,
    make_appointment,
) -> None:
    clinic, doctor, manager, _ = clinic_with_staff
    make_appointment(doctor, make_patient(clinic), datetime(2030, 1, 8, 15, 0))

    response = client.post(
        f'/v1/doctors/{doctor.id}/timeoff',
        json={'start_date': '2030-01-08', 'end_date': '2030-01-08', 'type': 'vacation'},
        headers=auth_headers(manager),
    )

    assert response.status_code == 409
    assert response.json()['detail']['code'] == 'BOOKED_SLOTS_EXIST'
    assert db.query(TimeOff).count() == 0


def test_time_off_can_be_added_and_removed(client, clinic_with_staff, auth_headers) -> None:
    _, doctor, manager, _ = clinic_with_staff

    created = client.post(
        f'/v1/doctors/{doctor.id}/timeoff',
        json={'start_date': '2030-01-08', 'end_date': '2030-01-10', 'type': 'break', 'reason': 'Training'},
        headers=auth_headers(manager),
    )

    assert created.status_code == 201
    time_off = created.json()['time_off']
    assert time_off['type'] == 'BREAK'

    deleted = client.delete(f"/v1/doctors/{doctor.id}/timeoff/{time_off['id']}", headers=auth_headers(manager))

    assert deleted.status_code == 200
    assert deleted.json() == {'slots_restored': 0}
