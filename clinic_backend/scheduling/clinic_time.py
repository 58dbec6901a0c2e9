"""Conversions between clinic-local wall-clock values and UTC instants.

Instants handled by the scheduling engine are naive ``datetime`` values in UTC,
which is how they are persisted. Calendar dates are clinic-local ``YYYY-MM-DD``
values; date-only columns store them as plain ``date`` objects so comparisons at
the storage layer never depend on a timezone.

All offset arithmetic lives here. Other modules call through these helpers
instead of deriving UTC offsets themselves.
"""

import re
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinic_backend.core.errors import ConfigurationError, FormatError

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')

MINUTES_PER_DAY = 1440
MAX_OFFSET_CORRECTIONS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(tz_name: str) -> ZoneInfo:
    if not tz_name:
        raise ConfigurationError('Clinic timezone is not set.')
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f'Unknown timezone: {tz_name}') from exc


def parse_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise FormatError('Invalid date format. Use YYYY-MM-DD')
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise FormatError(f'Invalid calendar date: {value}') from exc


def parse_time(value: str) -> tuple[int, int]:
    match = TIME_PATTERN.match(value) if isinstance(value, str) else None
    if not match:
        raise FormatError(f'Invalid time format: {value}. Use HH:MM')
    return int(match.group(1)), int(match.group(2))


def is_valid_time(value: str) -> bool:
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def time_to_minutes(value: str) -> int:
    hour, minute = parse_time(value)
    return hour * 60 + minute


def minutes_to_time(total_minutes: int) -> str:
    total_minutes %= MINUTES_PER_DAY
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def format_date(value: date) -> str:
    return value.isoformat()


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def to_local(instant: datetime, tz_name: str) -> datetime:
    """Render a UTC instant as an aware datetime in the clinic's zone."""
    return _as_utc(instant).astimezone(get_zone(tz_name))


def _resolve_wall_clock(day: date, minute_of_day: int, zone: ZoneInfo) -> datetime:
    # Treat the wall-clock reading as if it were UTC, render that guess in the
    # clinic zone and shift it by however far the rendering is off. Offsets only
    # change in a few fixed steps, so three corrections are enough. Readings in a
    # spring-forward gap do not converge and land on the later side of the gap.
    desired = datetime.combine(day, time()) + timedelta(minutes=minute_of_day)
    guess = desired

    for _ in range(MAX_OFFSET_CORRECTIONS):
        rendered = guess.replace(tzinfo=timezone.utc).astimezone(zone).replace(tzinfo=None)
        delta_minutes = round((desired - rendered).total_seconds() / 60)
        if delta_minutes == 0:
            break
        guess += timedelta(minutes=delta_minutes)

    return guess


def local_datetime_to_utc(date_value: str | date, time_value: str, tz_name: str) -> datetime:
    """Resolve a clinic-local date and HH:MM reading to a naive UTC instant."""
    day = parse_date(date_value)
    hour, minute = parse_time(time_value)
    return _resolve_wall_clock(day, hour * 60 + minute, get_zone(tz_name))


def local_minutes_to_utc(date_value: str | date, minutes: int, tz_name: str) -> datetime:
    """Like ``local_datetime_to_utc`` with minutes past local midnight.

    ``minutes`` may exceed a day, in which case the reading belongs to a later
    clinic-local calendar day.
    """
    day = parse_date(date_value)
    zone = get_zone(tz_name)
    day_offset, minute_of_day = divmod(minutes, MINUTES_PER_DAY)
    return _resolve_wall_clock(day + timedelta(days=day_offset), minute_of_day, zone)


def utc_to_local_date(instant: datetime, tz_name: str) -> str:
    return to_local(instant, tz_name).date().isoformat()


def utc_to_local_time(instant: datetime, tz_name: str) -> str:
    return to_local(instant, tz_name).strftime('%H:%M')


def utc_to_local_minutes(instant: datetime, tz_name: str) -> int:
    local = to_local(instant, tz_name)
    return local.hour * 60 + local.minute


def date_only_to_storage(date_value: str | date) -> date:
    """Storage form of a clinic-local calendar date (the UTC-midnight date)."""
    return parse_date(date_value)


def add_calendar_days(date_value: str | date, days: int, tz_name: str) -> str:
    get_zone(tz_name)
    return (parse_date(date_value) + timedelta(days=days)).isoformat()


def day_of_week(date_value: str | date, tz_name: str) -> int:
    """0 = Sunday ... 6 = Saturday for a clinic-local calendar date."""
    get_zone(tz_name)
    return parse_date(date_value).isoweekday() % 7


def clinic_now(tz_name: str) -> datetime:
    return to_local(utcnow(), tz_name)


def clinic_today(tz_name: str) -> date:
    return clinic_now(tz_name).date()


def local_day_bounds(date_value: str | date, tz_name: str) -> tuple[datetime, datetime]:
    """UTC instants of local midnight on ``date_value`` and on the following day."""
    day = parse_date(date_value)
    zone = get_zone(tz_name)
    return _resolve_wall_clock(day, 0, zone), _resolve_wall_clock(day + timedelta(days=1), 0, zone)


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
