"""Monthly accounting totals from invoices.

Invoice amounts are VAT-inclusive: the collected VAT is ``amount × rate / (1 + rate)``.
"""
from __future__ import annotations

from datetime import date, datetime

from insights.core.config import settings
from insights.db.data_access import DataAccessLayer, Filter
from insights.models.schemas import AccountingMetrics, to_amount
from insights.models.statuses import InvoiceStatus
from insights.services.base import BaseAggregator, Clock
from insights.utils.calendar import add_months, month_key, start_of_month, to_local

SETTLED_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


class AccountingMetricsAggregator(BaseAggregator):
    """Billed revenue, collected VAT, outstanding balance and cash received for one month."""

    name = "accounting"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        *,
        reference_date: date | datetime | None = None,
        clock: Clock | None = None,
        vat_rate: float | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        self._reference_date = reference_date
        self._vat_rate = settings.VAT_RATE if vat_rate is None else vat_rate

    async def _compute(self) -> AccountingMetrics:
        now = self.now()
        reference = to_local(self._reference_date) if self._reference_date is not None else now
        month_start = start_of_month(reference)  # type: ignore[arg-type]
        month_end = add_months(month_start, 1)

        rows = await self._select(
            "invoices",
            Filter.gte("created_at", month_start),
            Filter.lt("created_at", month_end),
            columns=["id", "amount", "status", "paid_date", "created_at"],
        )

        billed = vat = outstanding = cash = 0.0
        vat_share = self._vat_rate / (1 + self._vat_rate)
        for row in rows:
            amount = to_amount(row.get("amount"))
            status = InvoiceStatus.parse(row.get("status")) if row.get("status") else None
            billed += amount
            vat += amount * vat_share
            if status is not None and status not in SETTLED_STATUSES:
                outstanding += amount
            if status is InvoiceStatus.PAID:
                paid_at = to_local(row.get("paid_date"))
                if paid_at is not None and month_start <= paid_at < month_end:
                    cash += amount

        return AccountingMetrics(
            month=month_key(month_start),
            billed_revenue=round(billed, 2),
            vat_collected=round(vat, 2),
            outstanding_balance=round(outstanding, 2),
            cash_received=round(cash, 2),
            generated_at=now,
        )
