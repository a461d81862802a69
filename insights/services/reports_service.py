"""Long-horizon reports: lead sources, margins, site durations, top sites, energy."""
from __future__ import annotations

import logging
import math
from typing import Any

from insights.core.config import settings
from insights.db.data_access import DataAccessLayer, Filter
from insights.models.schemas import (
    ConversionReport,
    EnergyReport,
    LeadSourceBreakdown,
    MarginReport,
    ReportsData,
    SitesReport,
    TopProjectSummary,
    to_amount,
)
from insights.models.statuses import (
    QUALIFIED_LEAD_STATUS,
    SITE_ACTIVE_STATUSES,
    SITE_COMPLETED_STATUSES,
    LeadStatus,
    SiteStatus,
)
from insights.services.base import BaseAggregator, Clock
from insights.services.energy_service import aggregate_energy_by_category
from insights.services.rentability_service import build_rentability_input_from_site, calculate_rentability
from insights.utils.calendar import shift_years, start_of_year, to_local_date

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "Autres"
ENERGY_PROJECT_STATUSES = ("CHANTIER_EN_COURS", "CHANTIER_TERMINE", "LIVRE")

SITE_COLUMNS = [
    "id",
    "project_ref",
    "site_ref",
    "client_name",
    "status",
    "product_name",
    "project_category",
    "revenue",
    "ca_ttc",
    "profit_margin",
    "date_debut",
    "date_fin",
    "date_fin_prevue",
    "created_at",
    "cout_main_oeuvre_m2_ht",
    "cout_isolation_m2",
    "isolation_utilisee_m2",
    "surface_facturee",
    "montant_commission",
    "commission_eur_per_m2_enabled",
    "commission_eur_per_m2",
    "travaux_non_subventionnes",
    "travaux_non_subventionnes_montant",
    "valorisation_cee",
    "additional_costs",
    "frais_tva_percentage",
    "subcontractor_pricing_details",
    "subcontractor_base_units",
    "subcontractor_payment_units",
    "subcontractor_payment_amount",
    "subcontractor_payment_rate",
    "subcontractor_payment_confirmed",
]
PROJECT_COLUMNS = ["id", "status", "updated_at", "surface_isolee_m2", "surface_batiment_m2", "building_type", "project_products"]


def _finite(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def resolve_margin_rate(site: dict) -> float | None:
    """Persisted margin when usable, else the recomputed rate when the site has revenue."""
    persisted = _finite(site.get("profit_margin"))
    if persisted is not None:
        return persisted
    result = calculate_rentability(build_rentability_input_from_site(site))
    return result.margin_rate if result.revenue > 0 else None


def site_duration_days(site: dict) -> int | None:
    start = to_local_date(site.get("date_debut"))
    end = to_local_date(site.get("date_fin")) or to_local_date(site.get("date_fin_prevue"))
    if start is None or end is None or end < start:
        return None
    return (end - start).days


class ReportsAggregator(BaseAggregator):
    """Year-scale reporting for one organization."""

    name = "reports"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        *,
        clock: Clock | None = None,
        top_limit: int | None = None,
        margin_target: float | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        self._top_limit = top_limit or settings.TOP_PROJECTS_LIMIT
        self._margin_target = settings.MARGIN_TARGET if margin_target is None else margin_target

    async def _compute(self) -> ReportsData:
        now = self.now()
        year_start = start_of_year(now)
        previous_year_start = start_of_year(shift_years(now, -1))

        results = await self._gather(
            leads=self._select(
                "leads",
                Filter.gte("created_at", year_start),
                columns=["id", "status", "utm_source", "created_at"],
            ),
            sites=self._select("sites", Filter.gte("created_at", previous_year_start), columns=SITE_COLUMNS),
            projects=self._select(
                "projects",
                Filter.in_("status", ENERGY_PROJECT_STATUSES),
                Filter.gte("updated_at", year_start),
                columns=PROJECT_COLUMNS,
            ),
        )
        sites = results["sites"]
        energy = aggregate_energy_by_category(results["projects"])

        return ReportsData(
            conversion=self._conversion(results["leads"]),
            margin=self._margin(sites),
            sites=self._sites(sites),
            energy=EnergyReport(total_mwh=energy.total_mwh, breakdown=energy.breakdown),
            generated_at=now,
        )

    def _conversion(self, leads: list[dict]) -> ConversionReport:
        stats: dict[str, list[int]] = {}
        qualified_total = 0
        for lead in leads:
            source = (lead.get("utm_source") or "").strip() or DEFAULT_SOURCE
            entry = stats.setdefault(source, [0, 0])
            entry[0] += 1
            if LeadStatus.parse(lead.get("status")) is QUALIFIED_LEAD_STATUS:
                entry[1] += 1
                qualified_total += 1

        sources = [
            LeadSourceBreakdown(
                source=source,
                leads=count,
                qualified=qualified,
                conversion=round(qualified / count, 4) if count else 0.0,
            )
            for source, (count, qualified) in stats.items()
        ]
        sources.sort(key=lambda entry: (-entry.leads, entry.source))
        return ConversionReport(
            total_leads=len(leads),
            qualified_leads=qualified_total,
            average_rate=round(qualified_total / len(leads), 4) if leads else 0.0,
            sources=sources,
        )

    def _margin(self, sites: list[dict]) -> MarginReport:
        rates = [rate for rate in (resolve_margin_rate(site) for site in sites) if rate is not None]
        return MarginReport(
            average=round(sum(rates) / len(rates), 4) if rates else None,
            target=self._margin_target,
            sample_size=len(rates),
        )

    def _sites(self, sites: list[dict]) -> SitesReport:
        statuses = [SiteStatus.parse(site.get("status")) for site in sites]
        completed = [site for site, status in zip(sites, statuses) if status in SITE_COMPLETED_STATUSES]

        durations = [d for d in (site_duration_days(site) for site in completed) if d is not None]
        average_duration = math.floor(sum(durations) / len(durations) + 0.5) if durations else None

        ranked = []
        for site in sites:
            raw = site.get("revenue") if site.get("revenue") is not None else site.get("ca_ttc")
            if raw is None:
                continue
            ranked.append((to_amount(raw), site))
        ranked.sort(key=lambda pair: (-pair[0], str(pair[1].get("id"))))

        top = []
        for revenue, site in ranked[: self._top_limit]:
            status = SiteStatus.parse(site.get("status"))
            top.append(
                TopProjectSummary(
                    id=str(site.get("id")),
                    project_ref=site.get("project_ref"),
                    site_ref=site.get("site_ref"),
                    client_name=site.get("client_name"),
                    revenue=round(revenue, 2),
                    profit_margin=resolve_margin_rate(site),
                    status=site.get("status"),
                    status_label=site.get("status") if status is SiteStatus.UNKNOWN else status.label,
                )
            )

        return SitesReport(
            average_duration=average_duration,
            duration_sample_size=len(durations),
            top_projects=top,
            active_count=sum(1 for status in statuses if status in SITE_ACTIVE_STATUSES),
            completed_count=len(completed),
        )
