"""Tests for the monthly revenue trend."""
from datetime import date, datetime

import pytest

from conftest import ORG, OTHER_ORG, PARIS, utc
from insights.core.exceptions import InvalidDateRangeError
from insights.services.revenue_service import RevenueTrendBuilder


def seed(data) -> None:
    data.add("invoices", status="PAID", amount=1000, created_at=utc(2025, 3, 10, 12))
    data.add("invoices", status="SENT", amount=500, created_at=utc(2025, 3, 12, 12))
    data.add("invoices", status="paid", amount=200, created_at=utc(2025, 6, 17, 8))  # this week
    data.add("invoices", status="PAID", amount=300, created_at=utc(2025, 6, 10, 8))  # previous week
    data.add("invoices", status="PAID", amount=None, created_at=utc(2025, 6, 11, 8))
    data.add("invoices", status="PAID", amount=400, created_at=utc(2024, 4, 1, 12))
    data.add("invoices", status="SENT", amount=100, created_at=utc(2024, 2, 1, 12))
    data.add("invoices", status="PAID", amount=900, created_at=utc(2024, 8, 1, 12))  # after last year's cut-off
    data.add("invoices", org_id=OTHER_ORG, status="PAID", amount=9999, created_at=utc(2025, 3, 10, 12))


async def test_year_to_date_trend(data_access, clock):
    seed(data_access)
    revenue = await RevenueTrendBuilder(data_access, ORG, clock=clock).run()

    assert [p.iso_month for p in revenue.points] == ["2025-01", "2025-02", "2025-03", "2025-04", "2025-05", "2025-06"]
    assert [p.month for p in revenue.points] == ["Janv.", "Févr.", "Mars", "Avr.", "Mai", "Juin"]
    march, june = revenue.points[2], revenue.points[5]
    assert (march.total, march.invoiced_total) == (1000, 1500)
    assert (june.total, june.invoiced_total) == (500, 500)

    assert revenue.current_month_total == 500
    assert revenue.previous_month_total == 0
    assert revenue.current_week_total == 200
    assert revenue.previous_week_total == 300
    assert revenue.year_to_date_paid == 1500
    assert revenue.year_to_date_invoiced == 2000
    assert revenue.previous_year_to_date_paid == 400
    assert revenue.previous_year_to_date_invoiced == 500
    assert revenue.has_data is True


async def test_first_of_january_yields_a_single_bucket(data_access):
    new_year = datetime(2025, 1, 1, 9, 0, tzinfo=PARIS)
    data_access.add("invoices", status="PAID", amount=250, created_at=utc(2024, 12, 20, 12))
    revenue = await RevenueTrendBuilder(data_access, ORG, clock=lambda: new_year).run()

    assert [p.iso_month for p in revenue.points] == ["2025-01"]
    assert revenue.previous_month_total == 0
    assert revenue.has_data is False


async def test_has_data_requires_a_paid_invoice_in_range(data_access, clock):
    data_access.add("invoices", status="SENT", amount=800, created_at=utc(2025, 5, 5, 12))
    data_access.add("invoices", status="PAID", amount=800, created_at=utc(2024, 5, 5, 12))
    revenue = await RevenueTrendBuilder(data_access, ORG, clock=clock).run()
    assert revenue.has_data is False
    assert revenue.year_to_date_invoiced == 800


async def test_explicit_range(data_access, clock):
    seed(data_access)
    builder = RevenueTrendBuilder(
        data_access, ORG, start_date=date(2025, 2, 15), end_date=date(2025, 4, 10), clock=clock
    )
    revenue = await builder.run()

    assert [p.iso_month for p in revenue.points] == ["2025-02", "2025-03", "2025-04"]
    assert revenue.current_month_total == 0
    assert revenue.previous_month_total == 1000
    assert revenue.year_to_date_invoiced == 1500
    assert revenue.previous_year_to_date_paid == 400  # 2024-02-15 .. 2024-04-10


async def test_short_range_still_has_one_bucket(data_access, clock):
    revenue = await RevenueTrendBuilder(
        data_access, ORG, start_date=date(2025, 3, 10), end_date=date(2025, 3, 12), clock=clock
    ).run()
    assert len(revenue.points) == 1
    assert revenue.previous_month_total == 0


def test_inverted_range_is_rejected(data_access):
    with pytest.raises(InvalidDateRangeError) as exc_info:
        RevenueTrendBuilder(data_access, ORG, start_date=date(2025, 5, 1), end_date=date(2025, 4, 1))
    assert exc_info.value.code == "VAL002"
    assert data_access.calls == []


async def test_start_after_now_is_rejected(data_access, clock):
    builder = RevenueTrendBuilder(data_access, ORG, start_date=date(2025, 9, 1), clock=clock)
    with pytest.raises(InvalidDateRangeError):
        await builder.run()


async def test_single_query_covers_both_years(data_access, clock):
    await RevenueTrendBuilder(data_access, ORG, clock=clock).run()
    assert [(kind, table) for kind, table, _ in data_access.calls] == [("select", "invoices")]
    lower = next(f for f in data_access.calls[0][2] if f.op == "gte")
    assert lower.value == datetime(2024, 1, 1, tzinfo=PARIS)


async def test_week_totals_ignore_invoices_before_the_range(data_access, clock):
    # The business week around 2 January 2025 starts on Monday 30 December
    data_access.add("invoices", status="PAID", amount=500, created_at=utc(2024, 12, 30, 12))
    data_access.add("invoices", status="PAID", amount=700, created_at=utc(2024, 12, 24, 12))
    data_access.add("invoices", status="PAID", amount=100, created_at=utc(2025, 1, 1, 12))
    revenue = await RevenueTrendBuilder(
        data_access, ORG, start_date=date(2025, 1, 1), end_date=date(2025, 1, 2), clock=clock
    ).run()

    assert revenue.current_week_total == 100
    assert revenue.previous_week_total == 0
    assert revenue.year_to_date_paid == 100
    assert revenue.has_data is True
