"""Dashboard schemas: KPI snapshot, revenue trend and activity feed."""
from __future__ import annotations

import datetime as dt
from typing import Literal

from .utils import CamelModel

ActivityType = Literal["lead", "quote", "project", "site", "invoice"]


class EnergyBreakdownEntry(CamelModel):
    category: str
    mwh: float


class ConversionRate(CamelModel):
    """Accepted projects per qualified lead over the trailing window, in percent."""
    rate: float
    delta: float | None = None  # None when neither window has a signal


class DashboardMetrics(CamelModel):
    """Point-in-time operational KPIs of one organization."""
    leads_actifs: int
    projets_en_cours: int
    devis_en_attente: int
    devis_expirant_sous_7_jours: int
    chantiers_ouverts: int
    chantiers_fin_semaine: int
    rdv_programmes_semaine: int
    surface_isolee_mois: float
    total_mwh: float
    energy_by_category: list[EnergyBreakdownEntry]
    taux_conversion: ConversionRate
    ca_mois: float
    ca_semaine: float
    marge_totale_mois: float
    led_installees_mois: float
    generated_at: dt.datetime


class RevenuePoint(CamelModel):
    month: str  # "Janv."
    iso_month: str  # "2025-01"
    total: float  # paid
    invoiced_total: float


class RevenueData(CamelModel):
    points: list[RevenuePoint]
    current_month_total: float
    previous_month_total: float
    current_week_total: float
    previous_week_total: float
    has_data: bool
    generated_at: dt.datetime
    year_to_date_paid: float
    year_to_date_invoiced: float
    previous_year_to_date_paid: float
    previous_year_to_date_invoiced: float


class ActivityItem(CamelModel):
    id: str  # "<type>-<row id>"
    type: ActivityType
    title: str
    description: str
    status: str | None = None
    amount: float | None = None
    reference: str | None = None
    client: str | None = None
    city: str | None = None
    date: dt.datetime


PeriodType = Literal["week", "month", "quarter", "custom"]
SparklineMetric = Literal["revenue", "sites", "leads", "projects"]


class ComparativePoint(CamelModel):
    label: str  # "Lun.", "S25", "Juin"
    current: float
    previous: float  # same position in the previous period, 0 when it has fewer buckets


class ComparativeSeries(CamelModel):
    points: list[ComparativePoint]
    current_total: float
    previous_total: float


class ComparativeData(CamelModel):
    """One period against the previous one, bucketed by day, week or month."""
    period: PeriodType
    period_label: str
    current_start: dt.date
    current_end: dt.date
    previous_start: dt.date
    previous_end: dt.date
    revenue: ComparativeSeries
    projects: ComparativeSeries
    leads: ComparativeSeries
    generated_at: dt.datetime


class SparklinePoint(CamelModel):
    date: dt.date
    value: float


class SparklineData(CamelModel):
    metric: SparklineMetric
    days: int
    points: list[SparklinePoint]
    total: float
    generated_at: dt.datetime
