"""Period-over-period comparison for the dashboard charts.

A week is split into days, a month into weeks and a quarter or custom range
into months. Each bucket of the current period is paired with the bucket at
the same position in the previous period.
"""
from __future__ import annotations

import bisect
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable

from insights.core.exceptions import InvalidDateRangeError, InvalidParameterError
from insights.db.data_access import DataAccessLayer, Filter, Row
from insights.models.schemas import (
    ComparativeData,
    ComparativePoint,
    ComparativeSeries,
    PeriodType,
    to_amount,
)
from insights.models.statuses import SiteStatus
from insights.services.base import BaseAggregator, Clock
from insights.utils.calendar import (
    add_months,
    days_between,
    end_of_day,
    end_of_month,
    end_of_quarter,
    end_of_week,
    month_label,
    month_name,
    months_between,
    quarter_label,
    start_of_day,
    start_of_month,
    start_of_quarter,
    start_of_week,
    to_local,
    weekday_label,
    weeks_between,
)

logger = logging.getLogger(__name__)

PERIOD_TYPES: tuple[str, ...] = ("week", "month", "quarter", "custom")

Range = tuple[datetime, datetime]


def current_range(period: str, now: datetime) -> Range:
    if period == "week":
        return start_of_week(now), end_of_week(now)
    if period == "month":
        return start_of_month(now), end_of_month(now)
    return start_of_quarter(now), end_of_quarter(now)


def previous_range(period: str, start: datetime, end: datetime) -> Range:
    """Range the current one is compared with.

    Calendar periods step back one whole week, month or quarter; a custom
    range steps back by its own length in days.
    """
    if period == "week":
        return start_of_week(start - timedelta(days=7)), end_of_week(end - timedelta(days=7))
    if period == "month":
        return add_months(start_of_month(start), -1), end_of_month(add_months(start_of_month(end), -1))
    if period == "quarter":
        return add_months(start_of_quarter(start), -3), end_of_quarter(add_months(start_of_quarter(end), -3))
    length = timedelta(days=(end.date() - start.date()).days + 1)
    return start - length, end - length


def bucket_starts(period: str, start: datetime, end: datetime) -> list[datetime]:
    if period == "week":
        return days_between(start, end)
    if period == "month":
        return weeks_between(start, end)
    return [start_of_day(start)] + months_between(start, end)[1:]


def bucket_label(period: str, moment: datetime) -> str:
    if period == "week":
        return weekday_label(moment)
    if period == "month":
        return f"S{moment.isocalendar()[1]}"
    return month_label(moment)


def period_label(period: str, start: datetime, end: datetime) -> str:
    if period == "week":
        return f"Semaine du {_short(start)} au {_short(end)} {end.year}"
    if period == "month":
        return f"{month_name(start)} {start.year}"
    if period == "quarter":
        return quarter_label(start)
    return f"{_short(start)} - {_short(end)} {end.year}"


def _short(moment: datetime) -> str:
    return f"{moment.day:02d} {month_label(moment).lower()}"


class _Buckets:
    """Running totals per bucket of one range."""

    def __init__(self, starts: list[datetime], end: datetime):
        self.starts = starts
        self.start = starts[0]
        self.end = end
        self.totals = [0.0] * len(starts)

    def add(self, moment: datetime, value: float) -> None:
        if self.start <= moment <= self.end:
            self.totals[bisect.bisect_right(self.starts, moment) - 1] += value


class ComparativeAggregator(BaseAggregator):
    """Revenue, projects and leads of a period against the previous period.

    Revenue is the ``ca_ttc`` of sites finished (``TERMINE``) in the bucket;
    projects and leads are counted on ``created_at``. Without explicit dates
    the period containing "now" is used.
    """

    name = "dashboard_comparative"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        period: PeriodType = "month",
        *,
        start_date: date | datetime | None = None,
        end_date: date | datetime | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        if period not in PERIOD_TYPES:
            raise InvalidParameterError("period", period, f"expected one of {', '.join(PERIOD_TYPES)}")
        if (start_date is None) != (end_date is None):
            raise InvalidParameterError("period", period, "start_date and end_date must be given together")
        if period == "custom" and start_date is None:
            raise InvalidParameterError("period", period, "a custom period needs start_date and end_date")
        if start_date is not None and to_local(start_date) > to_local(end_date):  # type: ignore[operator]
            raise InvalidDateRangeError(start_date, end_date)
        self._period = period
        self._start_date = start_date
        self._end_date = end_date

    def _ranges(self, now: datetime) -> tuple[Range, Range]:
        if self._start_date is not None:
            current = (start_of_day(to_local(self._start_date)), end_of_day(to_local(self._end_date)))  # type: ignore[arg-type]
        else:
            current = current_range(self._period, now)
        return current, previous_range(self._period, *current)

    async def _compute(self) -> ComparativeData:
        now = self.now()
        (start, end), (prev_start, prev_end) = self._ranges(now)
        logger.debug("%s: %s..%s against %s..%s", self.name, start.date(), end.date(), prev_start.date(), prev_end.date())

        results = await self._gather(
            sites=self._select(
                "sites",
                Filter.gte("date_fin", prev_start.date()),
                Filter.lte("date_fin", end.date()),
                columns=["id", "status", "ca_ttc", "date_fin"],
            ),
            projects=self._select(
                "projects",
                Filter.gte("created_at", prev_start),
                Filter.lte("created_at", end),
                columns=["id", "created_at"],
            ),
            leads=self._select(
                "leads",
                Filter.gte("created_at", prev_start),
                Filter.lte("created_at", end),
                columns=["id", "created_at"],
            ),
        )

        finished = [s for s in results["sites"] if SiteStatus.parse(s.get("status")) is SiteStatus.TERMINE]
        current_starts = bucket_starts(self._period, start, end)
        previous_starts = bucket_starts(self._period, prev_start, prev_end)

        def series(rows: Iterable[Row], column: str, value: Callable[[Row], float]) -> ComparativeSeries:
            current, previous = _Buckets(current_starts, end), _Buckets(previous_starts, prev_end)
            for row in rows:
                moment = to_local(row.get(column))
                if moment is None:
                    continue
                # A row inside both ranges counts in both
                current.add(moment, value(row))
                previous.add(moment, value(row))
            points = [
                ComparativePoint(
                    label=bucket_label(self._period, bucket),
                    current=round(current.totals[index], 2),
                    previous=round(previous.totals[index], 2) if index < len(previous.totals) else 0.0,
                )
                for index, bucket in enumerate(current_starts)
            ]
            return ComparativeSeries(
                points=points,
                current_total=round(sum(current.totals), 2),
                previous_total=round(sum(previous.totals), 2),
            )

        return ComparativeData(
            period=self._period,
            period_label=period_label(self._period, start, end),
            current_start=start.date(),
            current_end=end.date(),
            previous_start=prev_start.date(),
            previous_end=prev_end.date(),
            revenue=series(finished, "date_fin", lambda row: to_amount(row.get("ca_ttc"))),
            projects=series(results["projects"], "created_at", lambda row: 1.0),
            leads=series(results["leads"], "created_at", lambda row: 1.0),
            generated_at=now,
        )
