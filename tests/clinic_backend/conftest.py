import os
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models import registry  # noqa: E402,F401
from clinic_backend.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from clinic_backend.models.clinic import Clinic  # noqa: E402
from clinic_backend.models.doctor import Doctor  # noqa: E402
from clinic_backend.models.patient import Patient  # noqa: E402
from clinic_backend.models.schedule import ShiftName, ShiftTemplate, WeeklyShift  # noqa: E402
from clinic_backend.models.slot import Slot, SlotStatus  # noqa: E402
from clinic_backend.scheduling import clinic_time  # noqa: E402

WEEKDAYS = (1, 2, 3, 4, 5)
MORNING_ONLY = {ShiftName.MORNING: ('09:00', '11:30')}


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def frozen_now(monkeypatch: pytest.MonkeyPatch):
    """Pin the engine's notion of "now" (naive UTC)."""

    def freeze(instant: datetime) -> datetime:
        monkeypatch.setattr(clinic_time, 'utcnow', lambda: instant)
        return instant

    return freeze


@pytest.fixture
def make_clinic(db):
    def factory(name: str = 'Riverside Clinic', timezone: str = 'America/Chicago', is_active: bool = True) -> Clinic:
        clinic = Clinic(name=name, timezone=timezone, is_active=is_active)
        db.add(clinic)
        db.commit()
        return clinic

    return factory


@pytest.fixture
def make_doctor(db):
    def factory(
        clinic: Clinic,
        full_name: str = 'Dr. Mira Okafor',
        duration: int = 30,
        has_license: bool = True,
        shifts: dict | None = None,
        days: tuple[int, ...] = WEEKDAYS,
        is_active: bool = True,
    ) -> Doctor:
        doctor = Doctor(
            clinic_id=clinic.id,
            full_name=full_name,
            specialization='General Practice',
            appointment_duration_min=duration,
            has_license=has_license,
            is_active=is_active,
        )
        db.add(doctor)
        db.flush()

        for shift_name, (start, end) in (MORNING_ONLY if shifts is None else shifts).items():
            db.add(ShiftTemplate(
                clinic_id=clinic.id,
                doctor_id=doctor.id,
                shift_name=shift_name,
                start_time=start,
                end_time=end,
            ))
            for day in days:
                db.add(WeeklyShift(
                    clinic_id=clinic.id,
                    doctor_id=doctor.id,
                    day_of_week=day,
                    shift_name=shift_name,
                    is_enabled=True,
                ))

        db.commit()
        return doctor

    return factory


@pytest.fixture
def make_patient(db):
    def factory(clinic: Clinic, full_name: str = 'Jonas Lind', phone: str = '+1-555-0100') -> Patient:
        patient = Patient(clinic_id=clinic.id, full_name=full_name, phone=phone)
        db.add(patient)
        db.commit()
        return patient

    return factory


@pytest.fixture
def make_slot(db):
    def factory(
        doctor: Doctor,
        starts_at: datetime,
        slot_date: date | None = None,
        duration: int = 30,
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot:
        slot = Slot(
            clinic_id=doctor.clinic_id,
            doctor_id=doctor.id,
            date=slot_date or starts_at.date(),
            starts_at=starts_at,
            ends_at=starts_at + timedelta(minutes=duration),
            shift_name=ShiftName.MORNING,
            status=status,
        )
        db.add(slot)
        db.commit()
        return slot

    return factory


@pytest.fixture
def make_appointment(db):
    """Insert an appointment row directly, optionally holding ``slot``."""

    def factory(
        doctor: Doctor,
        patient: Patient,
        starts_at: datetime,
        duration: int = 30,
        status: AppointmentStatus = AppointmentStatus.BOOKED,
        slot: Slot | None = None,
    ) -> Appointment:
        appointment = Appointment(
            clinic_id=doctor.clinic_id,
            doctor_id=doctor.id,
            patient_id=patient.id,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(minutes=duration),
            status=status,
        )
        db.add(appointment)
        db.flush()

        if slot is not None:
            slot.status = SlotStatus.BOOKED
            slot.appointment_id = appointment.id

        db.commit()
        return appointment

    return factory


@pytest.fixture
def slot_count(db):
    def count(doctor_id: int, **filters) -> int:
        query = db.query(Slot).filter(Slot.doctor_id == doctor_id)
        for column_name, value in filters.items():
            query = query.filter(getattr(Slot, column_name) == value)
        return query.count()

    return count
