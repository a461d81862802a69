"""Accounting schemas."""
from __future__ import annotations

import datetime as dt

from .utils import CamelModel


class AccountingMetrics(CamelModel):
    """Invoice totals for one calendar month."""
    month: str  # "2025-01"
    billed_revenue: float
    vat_collected: float
    outstanding_balance: float
    cash_received: float
    generated_at: dt.datetime
