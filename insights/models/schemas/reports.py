"""Long-horizon report schemas."""
from __future__ import annotations

import datetime as dt

from .dashboard import EnergyBreakdownEntry
from .utils import CamelModel


class LeadSourceBreakdown(CamelModel):
    source: str
    leads: int
    qualified: int
    conversion: float  # ratio, 0..1


class ConversionReport(CamelModel):
    total_leads: int
    qualified_leads: int
    average_rate: float
    sources: list[LeadSourceBreakdown]


class MarginReport(CamelModel):
    average: float | None
    target: float
    sample_size: int


class TopProjectSummary(CamelModel):
    id: str
    project_ref: str | None = None
    site_ref: str | None = None
    client_name: str | None = None
    revenue: float
    profit_margin: float | None = None
    status: str | None = None
    status_label: str | None = None


class SitesReport(CamelModel):
    average_duration: int | None  # calendar days
    duration_sample_size: int
    top_projects: list[TopProjectSummary]
    active_count: int
    completed_count: int


class EnergyReport(CamelModel):
    total_mwh: float
    breakdown: list[EnergyBreakdownEntry]


class ReportsData(CamelModel):
    conversion: ConversionReport
    margin: MarginReport
    sites: SitesReport
    energy: EnergyReport
    generated_at: dt.datetime


class PerformanceMetrics(CamelModel):
    """Operational rates in percent, 2 decimals."""
    conversion_rate: float
    closure_rate: float
    on_time_completion: float
    utilization_rate: float
