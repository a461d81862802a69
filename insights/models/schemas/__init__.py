"""Pydantic schemas for API responses.

Sub-modules:
- dashboard: KPI snapshot, revenue trend, activity feed, period comparison, sparklines
- reports: Long-horizon reports and performance rates
- accounting: Monthly invoice totals
- utils: camelCase base model and amount coercion
"""
# Dashboard schemas
from .dashboard import (
    ActivityItem,
    ActivityType,
    ComparativeData,
    ComparativePoint,
    ComparativeSeries,
    ConversionRate,
    DashboardMetrics,
    EnergyBreakdownEntry,
    PeriodType,
    RevenueData,
    RevenuePoint,
    SparklineData,
    SparklineMetric,
    SparklinePoint,
)

# Report schemas
from .reports import (
    ConversionReport,
    EnergyReport,
    LeadSourceBreakdown,
    MarginReport,
    PerformanceMetrics,
    ReportsData,
    SitesReport,
    TopProjectSummary,
)

# Accounting schemas
from .accounting import AccountingMetrics

from .utils import CamelModel, to_amount

__all__ = [
    # Dashboard
    "ActivityItem",
    "ActivityType",
    "ComparativeData",
    "ComparativePoint",
    "ComparativeSeries",
    "ConversionRate",
    "DashboardMetrics",
    "EnergyBreakdownEntry",
    "PeriodType",
    "RevenueData",
    "RevenuePoint",
    "SparklineData",
    "SparklineMetric",
    "SparklinePoint",
    # Reports
    "ConversionReport",
    "EnergyReport",
    "LeadSourceBreakdown",
    "MarginReport",
    "PerformanceMetrics",
    "ReportsData",
    "SitesReport",
    "TopProjectSummary",
    # Accounting
    "AccountingMetrics",
    # Utils
    "CamelModel",
    "to_amount",
]
