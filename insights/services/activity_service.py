"""Unified activity feed.

Five independent sources (leads, quotes, accepted projects, sites, invoices),
each capped to its most recent rows, are mapped to ``ActivityItem`` and merged
into one reverse-chronological list.
"""
from __future__ import annotations

import logging

from insights.core.config import settings
from insights.db.data_access import DataAccessLayer, Filter, Order
from insights.models.schemas import ActivityItem, to_amount
from insights.models.statuses import InvoiceStatus, LeadStatus, QuoteStatus, SiteStatus
from insights.services.base import BaseAggregator, Clock
from insights.services.project_status_service import ProjectStatusConfig, ProjectStatusRepository
from insights.utils.calendar import to_local

logger = logging.getLogger(__name__)

LEAD_TITLE = "Nouveau lead reçu"
PROJECT_TITLE = "Projet accepté"

QUOTE_TITLES = {
    QuoteStatus.SENT: "Devis envoyé",
    QuoteStatus.ACCEPTED: "Devis accepté",
    QuoteStatus.REJECTED: "Devis refusé",
}
SITE_TITLES = {
    SiteStatus.EN_COURS: "Chantier en cours",
    SiteStatus.TERMINE: "Chantier terminé",
    SiteStatus.LIVRE: "Chantier livré",
}
INVOICE_TITLES = {
    InvoiceStatus.SENT: "Facture envoyée",
    InvoiceStatus.PAID: "Paiement reçu",
}


def _values(statuses) -> list[str]:
    return [status.value for status in statuses]


def _resolve(parsed, titles: dict, raw: str | None) -> tuple[str, str | None]:
    """Title and status label; unknown statuses keep the first title and their raw value."""
    if parsed in titles:
        return titles[parsed], parsed.label
    return next(iter(titles.values())), raw


class ActivityFeedMerger(BaseAggregator):
    """Most recent business events across leads, quotes, projects, sites and invoices."""

    name = "dashboard_activity"

    def __init__(
        self,
        data_access: DataAccessLayer,
        org_id: str | None,
        statuses: ProjectStatusRepository | None = None,
        *,
        clock: Clock | None = None,
        limit: int | None = None,
        source_limit: int | None = None,
    ):
        super().__init__(data_access, org_id, clock=clock)
        self._statuses = statuses or ProjectStatusRepository(data_access)
        self._limit = limit or settings.ACTIVITY_FEED_LIMIT
        self._source_limit = source_limit or settings.ACTIVITY_SOURCE_LIMIT

    async def _compute(self) -> list[ActivityItem]:
        config = await self._statuses.get(self.org_id)
        recent = Order("updated_at")
        cap = self._source_limit

        results = await self._gather(
            leads=self._select(
                "leads",
                columns=["id", "full_name", "city", "created_at", "status"],
                order=Order("created_at"),
                limit=cap,
            ),
            quotes=self._select(
                "quotes",
                Filter.in_("status", _values(QUOTE_TITLES)),
                columns=["id", "quote_ref", "client_name", "status", "updated_at"],
                order=recent,
                limit=cap,
            ),
            projects=self._select(
                "projects",
                Filter.eq("status", config.accepted_value),
                columns=[
                    "id",
                    "project_ref",
                    "client_name",
                    "client_first_name",
                    "client_last_name",
                    "city",
                    "status",
                    "updated_at",
                ],
                order=recent,
                limit=cap,
            ),
            sites=self._select(
                "sites",
                Filter.in_("status", _values(SITE_TITLES)),
                columns=["id", "site_ref", "client_name", "city", "status", "updated_at"],
                order=recent,
                limit=cap,
            ),
            invoices=self._select(
                "invoices",
                Filter.in_("status", _values(INVOICE_TITLES)),
                columns=["id", "invoice_ref", "client_name", "status", "amount", "paid_date", "created_at", "updated_at"],
                order=recent,
                limit=cap,
            ),
        )

        items: list[ActivityItem] = []
        items += self._leads(results["leads"])
        items += self._quotes(results["quotes"])
        items += self._projects(results["projects"], config)
        items += self._sites(results["sites"])
        items += self._invoices(results["invoices"])

        items.sort(key=lambda item: item.date, reverse=True)
        return items[: self._limit]

    # ----------------------------------------------------------------- mappers
    # Rows without a usable event date are dropped here.

    @staticmethod
    def _leads(rows: list[dict]) -> list[ActivityItem]:
        items = []
        for lead in rows:
            when = to_local(lead.get("created_at"))
            if when is None:
                continue
            raw = lead.get("status")
            parsed = LeadStatus.parse(raw) if raw else None
            label = None
            if parsed is not None:
                label = raw if parsed is LeadStatus.UNKNOWN else parsed.label
            name = lead.get("full_name") or ""
            items.append(
                ActivityItem(
                    id=f"lead-{lead['id']}",
                    type="lead",
                    title=LEAD_TITLE,
                    description=f"{name} • {lead.get('city') or 'Ville inconnue'}",
                    status=label,
                    client=name or None,
                    city=lead.get("city"),
                    date=when,
                )
            )
        return items

    @staticmethod
    def _quotes(rows: list[dict]) -> list[ActivityItem]:
        items = []
        for quote in rows:
            when = to_local(quote.get("updated_at"))
            if when is None:
                continue
            title, label = _resolve(QuoteStatus.parse(quote.get("status")), QUOTE_TITLES, quote.get("status"))
            items.append(
                ActivityItem(
                    id=f"quote-{quote['id']}",
                    type="quote",
                    title=title,
                    description=f"{quote.get('quote_ref') or 'Devis'} • {quote.get('client_name') or 'Client'}",
                    status=label,
                    reference=quote.get("quote_ref"),
                    client=quote.get("client_name"),
                    date=when,
                )
            )
        return items

    @staticmethod
    def _projects(rows: list[dict], config: ProjectStatusConfig) -> list[ActivityItem]:
        items = []
        for project in rows:
            when = to_local(project.get("updated_at"))
            if when is None:
                continue
            full_name = " ".join(
                part for part in (project.get("client_first_name"), project.get("client_last_name")) if part
            )
            client = project.get("client_name") or full_name or None
            items.append(
                ActivityItem(
                    id=f"project-{project['id']}",
                    type="project",
                    title=PROJECT_TITLE,
                    description=f"{project.get('project_ref') or 'Projet'} • {client or 'Client'}",
                    status=config.label_for(project.get("status")),
                    client=client,
                    city=project.get("city"),
                    date=when,
                )
            )
        return items

    @staticmethod
    def _sites(rows: list[dict]) -> list[ActivityItem]:
        items = []
        for site in rows:
            when = to_local(site.get("updated_at"))
            if when is None:
                continue
            title, label = _resolve(SiteStatus.parse(site.get("status")), SITE_TITLES, site.get("status"))
            items.append(
                ActivityItem(
                    id=f"site-{site['id']}",
                    type="site",
                    title=title,
                    description=f"{site.get('site_ref') or 'Chantier'} • {site.get('client_name') or 'Client'}",
                    status=label,
                    client=site.get("client_name"),
                    city=site.get("city"),
                    date=when,
                )
            )
        return items

    @staticmethod
    def _invoices(rows: list[dict]) -> list[ActivityItem]:
        items = []
        for invoice in rows:
            status = InvoiceStatus.parse(invoice.get("status"))
            # A payment is dated when it was confirmed, everything else when issued
            if status is InvoiceStatus.PAID:
                when = to_local(invoice.get("paid_date")) or to_local(invoice.get("updated_at"))
            else:
                when = to_local(invoice.get("created_at"))
            if when is None:
                continue
            title, label = _resolve(status, INVOICE_TITLES, invoice.get("status"))
            amount = invoice.get("amount")
            items.append(
                ActivityItem(
                    id=f"invoice-{invoice['id']}",
                    type="invoice",
                    title=title,
                    description=f"{invoice.get('invoice_ref') or 'Facture'} • {invoice.get('client_name') or 'Client'}",
                    status=label,
                    amount=to_amount(amount) if amount is not None else None,
                    reference=invoice.get("invoice_ref"),
                    client=invoice.get("client_name"),
                    date=when,
                )
            )
        return items
