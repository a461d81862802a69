"""Tests for monthly accounting totals."""
from datetime import date

import pytest

from conftest import ORG, OTHER_ORG, utc
from insights.services.accounting_service import AccountingMetricsAggregator


def seed(data) -> None:
    data.add("invoices", status="PAID", amount=1200, created_at=utc(2025, 6, 2), paid_date=utc(2025, 6, 10))
    data.add("invoices", status="PAID", amount=600, created_at=utc(2025, 6, 3), paid_date=utc(2025, 7, 2))
    data.add("invoices", status="SENT", amount=2400, created_at=utc(2025, 6, 4))
    data.add("invoices", status="DRAFT", amount=None, created_at=utc(2025, 6, 5))
    data.add("invoices", status="CANCELLED", amount=300, created_at=utc(2025, 6, 6))
    data.add("invoices", status="SENT", amount=5000, created_at=utc(2025, 5, 20))
    data.add("invoices", org_id=OTHER_ORG, status="SENT", amount=7000, created_at=utc(2025, 6, 4))


async def test_current_month(data_access, clock):
    seed(data_access)
    result = await AccountingMetricsAggregator(data_access, ORG, clock=clock).run()

    assert result.month == "2025-06"
    assert result.billed_revenue == 4500
    assert result.vat_collected == pytest.approx(750)
    assert result.outstanding_balance == 2400
    assert result.cash_received == 1200


async def test_reference_date_selects_the_month(data_access, clock):
    seed(data_access)
    result = await AccountingMetricsAggregator(
        data_access, ORG, reference_date=date(2025, 5, 31), clock=clock, vat_rate=0.1
    ).run()

    assert result.month == "2025-05"
    assert result.billed_revenue == 5000
    assert result.vat_collected == pytest.approx(454.55)
    assert result.outstanding_balance == 5000
    assert result.cash_received == 0
