"""Daily series behind the KPI card sparklines."""
from __future__ import annotations

from datetime import timedelta

from insights.core.config import settings
from insights.core.exceptions import InvalidParameterError
from insights.db.data_access import DataAccessLayer, Filter, Order
from insights.models.schemas import SparklineData, SparklineMetric, SparklinePoint, to_amount
from insights.models.statuses import InvoiceStatus
from insights.services.base import BaseAggregator, Clock
from insights.utils.calendar import days_between, end_of_day, start_of_day, to_local_date

# metric -> (table, column the row is dated by)
SPARKLINE_SOURCES: dict[str, tuple[str, str]] = {
    "revenue": ("invoices", "paid_date"),
    "sites": ("sites", "created_at"),
    "leads": ("leads", "created_at"),
    "projects": ("projects", "created_at"),
}


class SparklineAggregator(BaseAggregator):
    """One value per day over the last ``days`` days, today included.

    ``revenue`` sums the amount of paid invoices by payment date; the other
    metrics count rows created that day. Days without data are 0.
    """

    name = "dashboard_sparkline"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        metric: SparklineMetric = "revenue",
        *,
        days: int | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        if metric not in SPARKLINE_SOURCES:
            raise InvalidParameterError("metric", metric, f"expected one of {', '.join(SPARKLINE_SOURCES)}")
        days = settings.SPARKLINE_DAYS if days is None else days
        if not 1 <= days <= settings.SPARKLINE_MAX_DAYS:
            raise InvalidParameterError("days", days, f"must be between 1 and {settings.SPARKLINE_MAX_DAYS}")
        self._metric = metric
        self._days = days

    async def _compute(self) -> SparklineData:
        now = self.now()
        first_day = start_of_day(now) - timedelta(days=self._days - 1)
        table, column = SPARKLINE_SOURCES[self._metric]
        revenue = self._metric == "revenue"

        rows = await self._select(
            table,
            Filter.gte(column, first_day),
            Filter.lte(column, end_of_day(now)),
            columns=["id", column, "amount", "status"] if revenue else ["id", column],
            order=Order(column, descending=False),
        )

        values = {day.date(): 0.0 for day in days_between(first_day, now)}
        for row in rows:
            if revenue and InvoiceStatus.parse(row.get("status")) is not InvoiceStatus.PAID:
                continue
            day = to_local_date(row.get(column))
            if day not in values:
                continue
            values[day] += to_amount(row.get("amount")) if revenue else 1.0

        points = [SparklinePoint(date=day, value=round(value, 2)) for day, value in values.items()]
        return SparklineData(
            metric=self._metric,
            days=self._days,
            points=points,
            total=round(sum(values.values()), 2),
            generated_at=now,
        )
