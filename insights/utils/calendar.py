"""Business calendar utilities.

Every week/month/year boundary the aggregators use is computed here, in the
configured business timezone. Weeks start on Monday. Naive datetimes coming
from the database are taken as UTC.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from insights.core.config import settings

_MONTH_LABELS = (
    "Janv.", "Févr.", "Mars", "Avr.", "Mai", "Juin",
    "Juil.", "Août", "Sept.", "Oct.", "Nov.", "Déc.",
)
_MONTH_NAMES = (
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
)
_WEEKDAY_LABELS = ("Lun.", "Mar.", "Mer.", "Jeu.", "Ven.", "Sam.", "Dim.")


@lru_cache
def business_tz(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or settings.BUSINESS_TIMEZONE)


def business_now() -> datetime:
    return datetime.now(business_tz())


def to_local(value: datetime | date | str | None) -> datetime | None:
    """Convert a column value to an aware datetime in the business timezone.

    Dates are read as local midnight. Returns None for empty or unparseable
    values so callers can drop the row instead of failing.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(business_tz())
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=business_tz())
    return None


def to_local_date(value: datetime | date | str | None) -> date | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    local = to_local(value)
    return local.date() if local else None


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_week(moment: datetime) -> datetime:
    """Monday 00:00 of the week containing ``moment``."""
    return start_of_day(moment - timedelta(days=moment.weekday()))


def end_of_week(moment: datetime) -> datetime:
    return end_of_day(start_of_week(moment) + timedelta(days=6))


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment.replace(day=1))


def add_months(moment: datetime, months: int) -> datetime:
    """Shift a month start by ``months``; the day is reset to 1."""
    index = moment.year * 12 + (moment.month - 1) + months
    return moment.replace(year=index // 12, month=index % 12 + 1, day=1)


def end_of_month(moment: datetime) -> datetime:
    return end_of_day(add_months(start_of_month(moment), 1) - timedelta(days=1))


def start_of_quarter(moment: datetime) -> datetime:
    return start_of_day(moment.replace(month=(moment.month - 1) // 3 * 3 + 1, day=1))


def end_of_quarter(moment: datetime) -> datetime:
    return end_of_month(add_months(start_of_quarter(moment), 2))


def start_of_year(moment: datetime) -> datetime:
    return start_of_day(moment.replace(month=1, day=1))


def shift_years(moment: datetime, years: int) -> datetime:
    """Same wall-clock instant ``years`` away; Feb 29 falls back to Feb 28."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def months_between(start: datetime, end: datetime) -> list[datetime]:
    """Month starts from the month of ``start`` to the month of ``end``, at least one."""
    cursor = start_of_month(start)
    last = start_of_month(end)
    months = [cursor]
    while True:
        cursor = add_months(cursor, 1)
        if cursor > last:
            break
        months.append(cursor)
    return months


def month_key(moment: datetime | date) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def month_label(moment: datetime | date) -> str:
    return _MONTH_LABELS[moment.month - 1]


def month_name(moment: datetime | date) -> str:
    return _MONTH_NAMES[moment.month - 1]


def weekday_label(moment: datetime | date) -> str:
    return _WEEKDAY_LABELS[moment.weekday()]


def quarter_label(moment: datetime | date) -> str:
    """``T2 2025``"""
    return f"T{(moment.month - 1) // 3 + 1} {moment.year}"


def days_between(start: datetime, end: datetime) -> list[datetime]:
    """Day starts from the day of ``start`` to the day of ``end``, at least one."""
    cursor = start_of_day(start)
    days = [cursor]
    cursor += timedelta(days=1)
    while cursor <= end:
        days.append(cursor)
        cursor += timedelta(days=1)
    return days


def weeks_between(start: datetime, end: datetime) -> list[datetime]:
    """``start`` followed by every Monday up to ``end``; a partial first week keeps its own start."""
    starts = [start_of_day(start)]
    cursor = start_of_week(start) + timedelta(days=7)
    while cursor <= end:
        starts.append(cursor)
        cursor += timedelta(days=7)
    return starts
