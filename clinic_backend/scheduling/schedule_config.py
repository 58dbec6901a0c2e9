"""Per-doctor recurring schedule configuration.

Writes here join the caller's unit of work and never commit on their own, so
an orchestration can combine them with appointment cancellations in one
transaction. Reads produce a :class:`ScheduleSnapshot` that the materializer
and the conflict analyzer consume without going back to the database.
"""

from dataclasses import dataclass, field, replace
from datetime import date

from pydantic import BaseModel
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.core.errors import BadRequestError, FormatError, NotFoundError
from clinic_backend.models import registry  # noqa: F401
from clinic_backend.models.clinic import Clinic
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.schedule import ShiftName, ShiftTemplate, TimeOff, TimeOffType, WeeklyShift
from clinic_backend.scheduling import clinic_time

DAYS_OF_WEEK = range(7)
DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


class ShiftTimes(BaseModel):
    start: str
    end: str


class WeeklyShiftEntry(BaseModel):
    day_of_week: int
    shifts: dict[ShiftName, bool]


class ScheduleChange(BaseModel):
    """A partial override of a doctor's recurring configuration."""

    appointment_duration_min: int | None = None
    shift_template: dict[ShiftName, ShiftTimes | None] | None = None
    weekly: list[WeeklyShiftEntry] | None = None


@dataclass(frozen=True)
class ShiftWindow:
    start: str
    end: str

    @property
    def start_minutes(self) -> int:
        return clinic_time.time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return clinic_time.time_to_minutes(self.end)

    @property
    def is_overnight(self) -> bool:
        # end == start wraps a full day
        return self.end_minutes <= self.start_minutes

    @property
    def range_end_minutes(self) -> int:
        if self.is_overnight:
            return self.end_minutes + clinic_time.MINUTES_PER_DAY
        return self.end_minutes

    def contains(self, minutes: int) -> bool:
        return self.start_minutes <= minutes < self.range_end_minutes


@dataclass(frozen=True)
class TimeOffPeriod:
    start: date
    end: date

    def covers(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class ScheduleSnapshot:
    """Doctor configuration assembled once per operation."""

    clinic_id: int
    doctor_id: int
    timezone: str
    duration_min: int
    has_license: bool
    templates: dict[ShiftName, ShiftWindow] = field(default_factory=dict)
    weekly: dict[int, dict[ShiftName, bool]] = field(default_factory=dict)
    time_off: tuple[TimeOffPeriod, ...] = ()

    def is_enabled(self, day_of_week: int, shift_name: ShiftName) -> bool:
        return self.weekly.get(day_of_week, {}).get(shift_name, False)

    def enabled_shifts(self, day_of_week: int) -> list[ShiftName]:
        return [shift_name for shift_name in ShiftName if self.is_enabled(day_of_week, shift_name)]

    def has_enabled_shift(self) -> bool:
        return any(self.enabled_shifts(day) for day in DAYS_OF_WEEK)

    def is_fully_configured(self) -> bool:
        return self.duration_min > 0 and bool(self.templates) and self.has_enabled_shift()

    def is_time_off(self, day: date) -> bool:
        return any(period.covers(day) for period in self.time_off)

    def merged(self, change: ScheduleChange) -> 'ScheduleSnapshot':
        templates = dict(self.templates)
        if change.shift_template:
            for shift_name, times in change.shift_template.items():
                if times is not None:
                    templates[shift_name] = ShiftWindow(start=times.start, end=times.end)

        weekly = {day: dict(shifts) for day, shifts in self.weekly.items()}
        for entry in change.weekly or []:
            day_shifts = weekly.setdefault(entry.day_of_week, {})
            day_shifts.update(entry.shifts)

        duration = self.duration_min
        if change.appointment_duration_min is not None:
            duration = change.appointment_duration_min

        return replace(self, templates=templates, weekly=weekly, duration_min=duration)


def get_clinic(db: Session, clinic_id: int) -> Clinic:
    clinic = db.query(Clinic).filter(Clinic.id == clinic_id).first()
    if not clinic:
        raise NotFoundError('Clinic not found')
    return clinic


def clinic_timezone(clinic: Clinic | None) -> str:
    if clinic is None or not clinic.timezone:
        return config.DEFAULT_CLINIC_TIMEZONE
    return clinic.timezone


def get_clinic_timezone(db: Session, clinic_id: int) -> str:
    return clinic_timezone(get_clinic(db, clinic_id))


def get_doctor(db: Session, clinic_id: int, doctor_id: int, active_only: bool = False) -> Doctor:
    query = db.query(Doctor).filter(Doctor.id == doctor_id, Doctor.clinic_id == clinic_id)
    if active_only:
        query = query.filter(Doctor.is_active.is_(True))

    doctor = query.first()
    if not doctor:
        raise NotFoundError('Doctor not found')
    return doctor


def is_schedule_fully_configured(db: Session, doctor_id: int) -> bool:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None or not doctor.appointment_duration_min or doctor.appointment_duration_min <= 0:
        return False

    has_template = db.query(ShiftTemplate.id).filter(ShiftTemplate.doctor_id == doctor_id).first() is not None
    has_enabled_shift = db.query(WeeklyShift.id).filter(
        WeeklyShift.doctor_id == doctor_id,
        WeeklyShift.is_enabled.is_(True),
    ).first() is not None

    return has_template and has_enabled_shift


def load_snapshot(db: Session, clinic_id: int, doctor_id: int, active_only: bool = False) -> ScheduleSnapshot:
    doctor = get_doctor(db, clinic_id, doctor_id, active_only=active_only)
    timezone = clinic_timezone(doctor.clinic)

    templates = {
        template.shift_name: ShiftWindow(start=template.start_time, end=template.end_time)
        for template in db.query(ShiftTemplate).filter(ShiftTemplate.doctor_id == doctor_id).all()
    }

    weekly: dict[int, dict[ShiftName, bool]] = {day: {name: False for name in ShiftName} for day in DAYS_OF_WEEK}
    for row in db.query(WeeklyShift).filter(WeeklyShift.doctor_id == doctor_id).all():
        if row.day_of_week in weekly:
            weekly[row.day_of_week][row.shift_name] = bool(row.is_enabled)

    time_off = tuple(
        TimeOffPeriod(start=row.start_date, end=row.end_date)
        for row in db.query(TimeOff).filter(TimeOff.doctor_id == doctor_id).order_by(TimeOff.start_date.asc()).all()
    )

    return ScheduleSnapshot(
        clinic_id=clinic_id,
        doctor_id=doctor_id,
        timezone=timezone,
        duration_min=doctor.appointment_duration_min or 0,
        has_license=bool(doctor.has_license),
        templates=templates,
        weekly=weekly,
        time_off=time_off,
    )


def validate_duration(duration: int) -> None:
    low = config.MIN_APPOINTMENT_DURATION_MINUTES
    high = config.MAX_APPOINTMENT_DURATION_MINUTES
    if duration < low or duration > high:
        raise BadRequestError(f'appointment_duration_min must be between {low} and {high} minutes')


def validate_day_of_week(day_of_week: int) -> None:
    if day_of_week not in DAYS_OF_WEEK:
        raise BadRequestError('day_of_week must be between 0 and 6')


def validate_schedule_change(change: ScheduleChange) -> None:
    if change.appointment_duration_min is not None:
        validate_duration(change.appointment_duration_min)

    for shift_name, times in (change.shift_template or {}).items():
        if times is None:
            continue
        if not clinic_time.is_valid_time(times.start):
            raise FormatError(f'Invalid start time for {shift_name.value}: {times.start}')
        if not clinic_time.is_valid_time(times.end):
            raise FormatError(f'Invalid end time for {shift_name.value}: {times.end}')

    for entry in change.weekly or []:
        validate_day_of_week(entry.day_of_week)


def upsert_shift_template(db: Session, doctor: Doctor, shift_name: ShiftName, start: str, end: str) -> ShiftTemplate:
    clinic_time.parse_time(start)
    clinic_time.parse_time(end)

    template = db.query(ShiftTemplate).filter(
        ShiftTemplate.doctor_id == doctor.id,
        ShiftTemplate.shift_name == shift_name,
    ).first()
    if template is None:
        template = ShiftTemplate(clinic_id=doctor.clinic_id, doctor_id=doctor.id, shift_name=shift_name)
        db.add(template)

    template.start_time = start
    template.end_time = end
    return template


def upsert_weekly_shift(
    db: Session,
    doctor: Doctor,
    day_of_week: int,
    shift_name: ShiftName,
    is_enabled: bool,
) -> WeeklyShift:
    validate_day_of_week(day_of_week)

    weekly_shift = db.query(WeeklyShift).filter(
        WeeklyShift.doctor_id == doctor.id,
        WeeklyShift.day_of_week == day_of_week,
        WeeklyShift.shift_name == shift_name,
    ).first()
    if weekly_shift is None:
        weekly_shift = WeeklyShift(
            clinic_id=doctor.clinic_id,
            doctor_id=doctor.id,
            day_of_week=day_of_week,
            shift_name=shift_name,
        )
        db.add(weekly_shift)

    weekly_shift.is_enabled = is_enabled
    return weekly_shift


def add_time_off(
    db: Session,
    doctor: Doctor,
    start_date: str | date,
    end_date: str | date,
    time_off_type: TimeOffType,
    reason: str | None = None,
) -> TimeOff:
    start = clinic_time.date_only_to_storage(start_date)
    end = clinic_time.date_only_to_storage(end_date)
    if start > end:
        raise BadRequestError('start_date must be before or equal to end_date')

    time_off = TimeOff(
        clinic_id=doctor.clinic_id,
        doctor_id=doctor.id,
        start_date=start,
        end_date=end,
        type=time_off_type,
        reason=reason,
    )
    db.add(time_off)
    db.flush()
    return time_off


def apply_schedule_change(db: Session, doctor: Doctor, change: ScheduleChange) -> None:
    if change.appointment_duration_min is not None:
        doctor.appointment_duration_min = change.appointment_duration_min

    if change.shift_template:
        for shift_name in ShiftName:
            times = change.shift_template.get(shift_name)
            if times is not None:
                upsert_shift_template(db, doctor, shift_name, times.start, times.end)

    for entry in change.weekly or []:
        for shift_name in ShiftName:
            if shift_name in entry.shifts:
                upsert_weekly_shift(db, doctor, entry.day_of_week, shift_name, entry.shifts[shift_name])

    db.flush()


def serialize_time_off(time_off: TimeOff) -> dict:
    return {
        'id': time_off.id,
        'start_date': clinic_time.format_date(time_off.start_date),
        'end_date': clinic_time.format_date(time_off.end_date),
        'type': time_off.type.value,
        'reason': time_off.reason,
    }


def get_doctor_schedule(db: Session, clinic_id: int, doctor_id: int) -> dict:
    doctor = get_doctor(db, clinic_id, doctor_id)
    snapshot = load_snapshot(db, clinic_id, doctor_id)

    shift_template = {}
    for shift_name in ShiftName:
        window = snapshot.templates.get(shift_name)
        shift_template[shift_name.value] = {'start': window.start, 'end': window.end} if window else None

    weekly = [
        {
            'day_of_week': day,
            'shifts': {shift_name.value: snapshot.is_enabled(day, shift_name) for shift_name in ShiftName},
        }
        for day in DAYS_OF_WEEK
    ]

    time_off_rows = db.query(TimeOff).filter(TimeOff.doctor_id == doctor_id).order_by(TimeOff.start_date.asc()).all()

    return {
        'doctor': {
            'id': doctor.id,
            'full_name': doctor.full_name,
            'specialization': doctor.specialization,
            'appointment_duration_min': doctor.appointment_duration_min,
            'has_license': bool(doctor.has_license),
            'schedule_configured_at': doctor.schedule_configured_at,
        },
        'shift_template': shift_template,
        'weekly': weekly,
        'time_off': [serialize_time_off(row) for row in time_off_rows],
    }
