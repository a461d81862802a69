"""Dashboard KPI snapshot.

All sub-queries are issued together once the organization's project-status
configuration is known; totals are then computed in memory. Revenue, margin,
surface and LED totals only count sites finished (``TERMINE``) inside the
current month or week.
"""
from __future__ import annotations

import logging
import unicodedata
from datetime import timedelta

from insights.core.config import settings
from insights.db.data_access import DataAccessLayer, Filter
from insights.models.schemas import ConversionRate, DashboardMetrics, to_amount
from insights.models.statuses import (
    ACTIVE_LEAD_STATUSES,
    QUALIFIED_LEAD_STATUS,
    SITE_ACTIVE_STATUSES,
    QuoteStatus,
    SiteStatus,
)
from insights.services.base import BaseAggregator, Clock
from insights.services.energy_service import aggregate_energy_by_category
from insights.services.project_status_service import ProjectStatusRepository
from insights.utils.calendar import (
    add_months,
    end_of_week,
    start_of_month,
    start_of_week,
    to_local,
    to_local_date,
)

logger = logging.getLogger(__name__)

PROJECT_COLUMNS = [
    "id",
    "status",
    "updated_at",
    "surface_isolee_m2",
    "surface_batiment_m2",
    "city",
    "client_name",
    "building_type",
    "project_products",
]
FINISHED_SITE_COLUMNS = [
    "id",
    "ca_ttc",
    "marge_totale_ttc",
    "surface_facturee_m2",
    "nb_luminaires",
    "date_fin",
    "project_id",
    "project_category",
]
UPCOMING_DAYS = 7
SURFACE_CATEGORY = "isolation"
LIGHTING_CATEGORY = "eclairage"


def _category_key(value: str | None) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip().lower()


def conversion_rate(qualified: int, accepted: int) -> float:
    return 0.0 if qualified == 0 else accepted / qualified * 100


class MetricsAggregator(BaseAggregator):
    """Point-in-time operational KPIs for one organization."""

    name = "dashboard_metrics"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        statuses: ProjectStatusRepository | None = None,
        *,
        clock: Clock | None = None,
        conversion_window_days: int | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        self._statuses = statuses or ProjectStatusRepository(data_access)
        self._window = timedelta(days=conversion_window_days or settings.CONVERSION_WINDOW_DAYS)

    async def _compute(self) -> DashboardMetrics:
        config = await self._statuses.get(self.org_id)

        now = self.now()
        today = now.date()
        week_start, week_end = start_of_week(now), end_of_week(now)
        month_start = start_of_month(now)
        next_month_start = add_months(month_start, 1)
        window_start = now - self._window
        previous_window_start = window_start - self._window
        finished = SiteStatus.TERMINE.value

        results = await self._gather(
            active_leads=self._count("leads", Filter.in_("status", [s.value for s in ACTIVE_LEAD_STATUSES])),
            projects=self._select(
                "projects", Filter.in_("status", config.fetch_values), columns=PROJECT_COLUMNS
            ),
            pending_quotes=self._select(
                "quotes",
                Filter.eq("status", QuoteStatus.SENT.value),
                columns=["id", "status", "valid_until"],
            ),
            open_sites=self._select(
                "sites",
                Filter.in_("status", [s.value for s in SITE_ACTIVE_STATUSES]),
                columns=["id", "status", "date_fin_prevue"],
            ),
            appointments=self._select(
                "leads",
                Filter.gte("date_rdv", week_start),
                Filter.lte("date_rdv", week_end),
                columns=["id", "date_rdv"],
            ),
            qualified_leads=self._select(
                "leads",
                Filter.eq("status", QUALIFIED_LEAD_STATUS.value),
                Filter.gte("updated_at", previous_window_start),
                columns=["id", "updated_at"],
            ),
            accepted_projects=self._select(
                "projects",
                Filter.eq("status", config.accepted_value),
                Filter.gte("updated_at", previous_window_start),
                columns=["id", "updated_at"],
            ),
            finished_month=self._select(
                "sites",
                Filter.eq("status", finished),
                Filter.gte("date_fin", month_start.date()),
                Filter.lt("date_fin", next_month_start.date()),
                columns=FINISHED_SITE_COLUMNS,
            ),
            finished_week=self._select(
                "sites",
                Filter.eq("status", finished),
                Filter.gte("date_fin", week_start.date()),
                Filter.lte("date_fin", week_end.date()),
                columns=["id", "ca_ttc", "date_fin"],
            ),
        )

        projects = results["projects"]
        open_sites = results["open_sites"]
        quotes = results["pending_quotes"]
        finished_month = results["finished_month"]
        upcoming_limit = today + timedelta(days=UPCOMING_DAYS)

        def upcoming(value) -> bool:
            day = to_local_date(value)
            return day is not None and today <= day <= upcoming_limit

        sites_ending = sum(
            1
            for site in open_sites
            if SiteStatus.parse(site.get("status")) is SiteStatus.EN_COURS and upcoming(site.get("date_fin_prevue"))
        )
        quotes_expiring = sum(1 for quote in quotes if upcoming(quote.get("valid_until")))

        surface = sum(
            to_amount(site.get("surface_facturee_m2"))
            for site in finished_month
            if _category_key(site.get("project_category")) == SURFACE_CATEGORY
        )
        leds = sum(
            to_amount(site.get("nb_luminaires"))
            for site in finished_month
            if _category_key(site.get("project_category")) == LIGHTING_CATEGORY
        )

        surface_values = config.surface_values
        active_values = config.active_values
        energy = aggregate_energy_by_category(
            projects, include=lambda project: project.get("status") in surface_values
        )

        rate, delta = self._conversion(results["qualified_leads"], results["accepted_projects"], window_start)

        return DashboardMetrics(
            leads_actifs=results["active_leads"],
            projets_en_cours=sum(1 for p in projects if p.get("status") in active_values),
            devis_en_attente=len(quotes),
            devis_expirant_sous_7_jours=quotes_expiring,
            chantiers_ouverts=len(open_sites),
            chantiers_fin_semaine=sites_ending,
            rdv_programmes_semaine=len(results["appointments"]),
            surface_isolee_mois=round(surface, 2),
            total_mwh=energy.total_mwh,
            energy_by_category=energy.breakdown,
            taux_conversion=ConversionRate(rate=rate, delta=delta),
            ca_mois=round(sum(to_amount(s.get("ca_ttc")) for s in finished_month), 2),
            ca_semaine=round(sum(to_amount(s.get("ca_ttc")) for s in results["finished_week"]), 2),
            marge_totale_mois=round(sum(to_amount(s.get("marge_totale_ttc")) for s in finished_month), 2),
            led_installees_mois=leds,
            generated_at=now,
        )

    @staticmethod
    def _conversion(qualified: list[dict], accepted: list[dict], window_start) -> tuple[float, float | None]:
        """Current-window rate and its delta against the previous window."""

        def split(rows: list[dict]) -> tuple[int, int]:
            current = previous = 0
            for row in rows:
                updated = to_local(row.get("updated_at"))
                if updated is None:
                    continue
                if updated >= window_start:
                    current += 1
                else:
                    previous += 1
            return current, previous

        current_qualified, previous_qualified = split(qualified)
        current_accepted, previous_accepted = split(accepted)
        current_rate = conversion_rate(current_qualified, current_accepted)
        previous_rate = conversion_rate(previous_qualified, previous_accepted)
        if current_rate == 0 and previous_rate == 0:
            return 0.0, None
        return round(current_rate, 1), round(current_rate - previous_rate, 1)
