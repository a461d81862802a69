"""Monthly revenue trend from invoices.

One query covers the requested range and the same range one year earlier;
bucketing and period comparisons happen in memory.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable

from insights.core.exceptions import InvalidDateRangeError
from insights.db.data_access import DataAccessLayer, Filter, Order
from insights.models.schemas import RevenueData, RevenuePoint, to_amount
from insights.models.statuses import InvoiceStatus
from insights.services.base import BaseAggregator, Clock
from insights.utils.calendar import (
    end_of_day,
    month_key,
    month_label,
    months_between,
    shift_years,
    start_of_day,
    start_of_week,
    start_of_year,
    to_local,
)

logger = logging.getLogger(__name__)


class RevenueTrendBuilder(BaseAggregator):
    """Paid vs invoiced totals per month, with week and year-over-year comparisons.

    Without an explicit range the trend covers the current year to date.
    """

    name = "dashboard_revenue"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        *,
        start_date: date | datetime | None = None,
        end_date: date | datetime | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        if start_date is not None and end_date is not None:
            if to_local(start_date) > to_local(end_date):  # type: ignore[operator]
                raise InvalidDateRangeError(start_date, end_date)
        self._start_date = start_date
        self._end_date = end_date

    def _range(self, now: datetime) -> tuple[datetime, datetime]:
        range_end = end_of_day(to_local(self._end_date)) if self._end_date is not None else now  # type: ignore[arg-type]
        if self._start_date is not None:
            range_start = start_of_day(to_local(self._start_date))  # type: ignore[arg-type]
        else:
            range_start = start_of_year(range_end)
        if range_start > range_end:
            raise InvalidDateRangeError(range_start.date(), range_end.date())
        return range_start, range_end

    async def _compute(self) -> RevenueData:
        now = self.now()
        range_start, range_end = self._range(now)
        previous_start = shift_years(range_start, -1)
        previous_end = shift_years(range_end, -1)

        rows = await self._select(
            "invoices",
            Filter.gte("created_at", previous_start),
            Filter.lte("created_at", range_end),
            columns=["id", "amount", "status", "created_at", "updated_at"],
            order=Order("created_at", descending=False),
        )

        invoices: list[tuple[datetime, float, bool]] = []
        for row in rows:
            created = to_local(row.get("created_at"))
            if created is None:
                continue
            paid = InvoiceStatus.parse(row.get("status")) is InvoiceStatus.PAID
            invoices.append((created, to_amount(row.get("amount")), paid))

        in_range = [inv for inv in invoices if range_start <= inv[0] <= range_end]
        paid_all = [inv for inv in invoices if inv[2]]
        paid_in_range = [inv for inv in in_range if inv[2]]

        invoiced_by_month: dict[str, float] = {}
        paid_by_month: dict[str, float] = {}
        for created, amount, paid in in_range:
            key = month_key(created)
            invoiced_by_month[key] = invoiced_by_month.get(key, 0.0) + amount
            if paid:
                paid_by_month[key] = paid_by_month.get(key, 0.0) + amount

        points = [
            RevenuePoint(
                month=month_label(month),
                iso_month=month_key(month),
                total=round(paid_by_month.get(month_key(month), 0.0), 2),
                invoiced_total=round(invoiced_by_month.get(month_key(month), 0.0), 2),
            )
            for month in months_between(range_start, range_end)
        ]

        week_start = start_of_week(range_end)
        week_end = week_start + timedelta(days=7)
        previous_week_start = week_start - timedelta(days=7)

        return RevenueData(
            points=points,
            current_month_total=points[-1].total,
            previous_month_total=points[-2].total if len(points) > 1 else 0.0,
            current_week_total=_sum_between(paid_in_range, week_start, week_end),
            previous_week_total=_sum_between(paid_in_range, previous_week_start, week_start),
            has_data=bool(paid_in_range),
            generated_at=now,
            year_to_date_paid=_sum_between(paid_in_range, range_start, range_end, inclusive=True),
            year_to_date_invoiced=_sum_between(in_range, range_start, range_end, inclusive=True),
            previous_year_to_date_paid=_sum_between(paid_all, previous_start, previous_end, inclusive=True),
            previous_year_to_date_invoiced=_sum_between(invoices, previous_start, previous_end, inclusive=True),
        )


def _sum_between(
    invoices: Iterable[tuple[datetime, float, bool]],
    start: datetime,
    end: datetime,
    *,
    inclusive: bool = False,
) -> float:
    """Sum amounts created in [start, end), or [start, end] when ``inclusive``."""
    total = sum(
        amount
        for created, amount, _ in invoices
        if start <= created and (created <= end if inclusive else created < end)
    )
    return round(total, 2)
