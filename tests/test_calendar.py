"""Tests for business-calendar boundaries."""
from datetime import datetime

from conftest import NOW, PARIS
from insights.utils.calendar import (
    days_between,
    end_of_day,
    end_of_quarter,
    month_name,
    quarter_label,
    start_of_quarter,
    weekday_label,
    weeks_between,
)


def test_quarter_boundaries():
    assert start_of_quarter(NOW) == datetime(2025, 4, 1, tzinfo=PARIS)
    assert end_of_quarter(NOW) == datetime(2025, 6, 30, 23, 59, 59, 999999, tzinfo=PARIS)
    november = datetime(2025, 11, 5, 8, tzinfo=PARIS)
    assert start_of_quarter(november) == datetime(2025, 10, 1, tzinfo=PARIS)
    assert end_of_quarter(november).date().isoformat() == "2025-12-31"
    assert quarter_label(NOW) == "T2 2025"
    assert quarter_label(november) == "T4 2025"


def test_days_between_keeps_local_midnight_across_dst():
    days = days_between(datetime(2025, 3, 29, 15, tzinfo=PARIS), datetime(2025, 3, 31, 1, tzinfo=PARIS))
    assert [d.day for d in days] == [29, 30, 31]
    assert all(d.hour == 0 for d in days)


def test_weeks_between_starts_with_a_partial_week():
    starts = weeks_between(datetime(2025, 6, 1, tzinfo=PARIS), end_of_day(datetime(2025, 6, 30, tzinfo=PARIS)))
    assert [d.day for d in starts] == [1, 2, 9, 16, 23, 30]


def test_french_labels():
    assert weekday_label(NOW) == "Mer."
    assert month_name(NOW) == "juin"
