import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from documents import PeriodKind

DAY = timedelta(days=1)
WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class Period:
    kind: str
    start: datetime
    end: datetime


def local_now() -> datetime:
    """Naive wall-clock time in the configured timezone."""
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def weekday_name(value: datetime) -> str:
    return WEEKDAY_NAMES[value.weekday()]


def ceil_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / DAY.total_seconds())


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(value: datetime, months: int) -> datetime:
    total_months = value.month - 1 + months
    year = value.year + total_months // 12
    month = total_months % 12 + 1
    day = min(value.day, days_in_month(year, month))
    return value.replace(year=year, month=month, day=day)


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999000)


def _as_kind(kind: Union[PeriodKind, str, None]) -> Optional[PeriodKind]:
    try:
        return PeriodKind(kind)
    except ValueError:
        return None


def compute_period_bounds(
    kind: Union[PeriodKind, str], reference: datetime
) -> Period:
    period_kind = _as_kind(kind)
    if period_kind is None:
        # Unknown kinds leave the reference instant untouched.
        return Period(str(kind), reference, reference)

    day_start = _start_of_day(reference)
    if period_kind == PeriodKind.daily:
        return Period(period_kind.value, day_start, _end_of_day(day_start))

    if period_kind == PeriodKind.weekly:
        # Weeks start on Sunday.
        start = day_start - timedelta(days=(reference.weekday() + 1) % 7)
        return Period(period_kind.value, start, _end_of_day(start + 6 * DAY))

    if period_kind == PeriodKind.monthly:
        start = day_start.replace(day=1)
        last = days_in_month(start.year, start.month)
        return Period(period_kind.value, start, _end_of_day(start.replace(day=last)))

    if period_kind == PeriodKind.quarterly:
        first_month = (reference.month - 1) // 3 * 3 + 1
        start = day_start.replace(month=first_month, day=1)
        last_month = first_month + 2
        end = start.replace(month=last_month, day=days_in_month(start.year, last_month))
        return Period(period_kind.value, start, _end_of_day(end))

    start = day_start.replace(month=1, day=1)
    return Period(period_kind.value, start, _end_of_day(start.replace(month=12, day=31)))


def compute_next_reset(
    kind: Union[PeriodKind, str], period_end: Optional[datetime]
) -> Optional[datetime]:
    if period_end is None:
        return None
    period_kind = _as_kind(kind)
    if period_kind == PeriodKind.daily:
        return period_end + DAY
    if period_kind == PeriodKind.weekly:
        return period_end + 7 * DAY
    if period_kind == PeriodKind.monthly:
        return add_months(period_end, 1)
    if period_kind == PeriodKind.quarterly:
        return add_months(period_end, 3)
    if period_kind == PeriodKind.yearly:
        return add_months(period_end, 12)
    return period_end
