"""Operational performance rates over the whole history of an organization."""
from __future__ import annotations

from insights.models.schemas import PerformanceMetrics
from insights.models.statuses import (
    PROJECT_COMPLETED_STATUSES,
    QUALIFIED_LEAD_STATUS,
    SITE_COMPLETED_STATUSES,
    LeadStatus,
    SiteStatus,
)
from insights.services.base import BaseAggregator
from insights.utils.calendar import to_local_date


def percentage(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total > 0 else 0.0


class PerformanceMetricsAggregator(BaseAggregator):
    name = "performance"

    async def _compute(self) -> PerformanceMetrics:
        results = await self._gather(
            leads=self._select("leads", columns=["id", "status"]),
            projects=self._select("projects", columns=["id", "status"]),
            sites=self._select("sites", columns=["id", "status", "date_debut", "date_fin", "date_fin_prevue"]),
        )
        leads, projects, sites = results["leads"], results["projects"], results["sites"]

        qualified = sum(1 for lead in leads if LeadStatus.parse(lead.get("status")) is QUALIFIED_LEAD_STATUS)
        closed = sum(1 for project in projects if project.get("status") in PROJECT_COMPLETED_STATUSES)

        site_statuses = [(site, SiteStatus.parse(site.get("status"))) for site in sites]
        finished = [site for site, status in site_statuses if status in SITE_COMPLETED_STATUSES]
        on_time = 0
        for site in finished:
            actual, planned = to_local_date(site.get("date_fin")), to_local_date(site.get("date_fin_prevue"))
            if actual is not None and planned is not None and actual <= planned:
                on_time += 1
        in_progress = sum(1 for _, status in site_statuses if status is SiteStatus.EN_COURS)

        return PerformanceMetrics(
            conversion_rate=percentage(qualified, len(leads)),
            closure_rate=percentage(closed, len(projects)),
            on_time_completion=percentage(on_time, len(finished)),
            utilization_rate=percentage(in_progress, len(sites)),
        )
