"""Tests for the KPI sparkline series."""
from datetime import date, timedelta

import pytest

from conftest import NOW, ORG, OTHER_ORG, utc
from insights.core.exceptions import InvalidParameterError
from insights.services.sparkline_service import SparklineAggregator


async def test_revenue_sums_paid_invoices_by_payment_day(data_access, clock):
    data_access.add("invoices", status="PAID", amount=100, paid_date=utc(2025, 6, 18, 8))
    data_access.add("invoices", status="PAID", amount=50, paid_date=utc(2025, 6, 12, 0))  # 02:00 in Paris
    data_access.add("invoices", status="paid", amount=25, paid_date=utc(2025, 6, 15, 10))
    data_access.add("invoices", status="SENT", amount=999, paid_date=utc(2025, 6, 15, 10))
    data_access.add("invoices", status="PAID", amount=80, paid_date=utc(2025, 6, 11, 21))  # 23:00 the day before
    data_access.add("invoices", status="PAID", amount=70, paid_date=None)
    data_access.add("invoices", org_id=OTHER_ORG, status="PAID", amount=5000, paid_date=utc(2025, 6, 18, 8))

    result = await SparklineAggregator(data_access, ORG, "revenue", days=7, clock=clock).run()

    assert [p.date for p in result.points] == [date(2025, 6, d) for d in range(12, 19)]
    assert [p.value for p in result.points] == [50, 0, 0, 25, 0, 0, 100]
    assert result.total == 175
    assert result.metric == "revenue"


@pytest.mark.parametrize("metric, table", [("leads", "leads"), ("sites", "sites"), ("projects", "projects")])
async def test_count_metrics_use_creation_day(data_access, clock, metric, table):
    data_access.add(table, created_at=utc(2025, 6, 18, 7))
    data_access.add(table, created_at=utc(2025, 6, 18, 9))
    data_access.add(table, created_at=utc(2025, 6, 1, 9))

    result = await SparklineAggregator(data_access, ORG, metric, days=3, clock=clock).run()

    assert [p.value for p in result.points] == [0, 0, 2]
    assert result.total == 2
    (call,) = data_access.calls
    assert call[1] == table


async def test_default_length(data_access, clock):
    result = await SparklineAggregator(data_access, ORG, clock=clock).run()
    assert result.days == 30
    assert len(result.points) == 30
    assert result.points[0].date == NOW.date() - timedelta(days=29)
    assert result.total == 0


@pytest.mark.parametrize("metric, days", [("users", 7), ("leads", 0), ("leads", 367)])
def test_invalid_parameters_are_rejected(data_access, metric, days):
    with pytest.raises(InvalidParameterError) as exc_info:
        SparklineAggregator(data_access, ORG, metric, days=days)
    assert exc_info.value.code == "VAL003"
