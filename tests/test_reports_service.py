"""Tests for the yearly reports."""
from datetime import date

import pytest

from conftest import ORG, FakeDataAccess, utc
from insights.core.exceptions import DataAccessError
from insights.services.reports_service import ReportsAggregator, resolve_margin_rate, site_duration_days

INSULATION = {
    "code": "BAR-EN-101",
    "category": "Isolation",
    "kwh_cumac_values": [{"building_type": "Maison", "kwh_cumac": 1500}],
}


def seed_leads(data) -> None:
    for status in ("Éligible", "Phoning", "Non éligible"):
        data.add("leads", utm_source="google", status=status, created_at=utc(2025, 2, 1))
    data.add("leads", utm_source="facebook", status="Éligible", created_at=utc(2025, 3, 1))
    data.add("leads", utm_source=None, status="Phoning", created_at=utc(2025, 4, 1))
    data.add("leads", utm_source="  ", status="Phoning", created_at=utc(2025, 4, 2))
    data.add("leads", utm_source="google", status="Éligible", created_at=utc(2024, 12, 31))


def seed_sites(data) -> None:
    created = utc(2025, 1, 10)
    data.add(
        "sites",
        id=1,
        site_ref="CH-1",
        status="TERMINE",
        revenue=8000,
        profit_margin=0.4,
        date_debut=date(2025, 3, 1),
        date_fin=date(2025, 3, 11),
        created_at=created,
    )
    data.add(
        "sites",
        id=2,
        site_ref="CH-2",
        status="LIVRE",
        revenue=1000,
        profit_margin=None,
        cout_main_oeuvre_m2_ht=10,
        cout_isolation_m2=20,
        isolation_utilisee_m2=10,
        date_debut=date(2025, 4, 1),
        date_fin=None,
        date_fin_prevue=date(2025, 4, 4),
        created_at=created,
    )
    data.add(
        "sites",
        id=3,
        status="TERMINE",
        revenue=None,
        ca_ttc=12000,
        profit_margin=float("nan"),
        date_debut=date(2025, 5, 10),
        date_fin=date(2025, 5, 1),
        created_at=created,
    )
    data.add("sites", id=4, status="EN_COURS", revenue=None, ca_ttc=None, created_at=created)
    data.add("sites", id=5, status="PLANIFIE", revenue=None, ca_ttc=500, created_at=utc(2024, 6, 1))
    data.add("sites", id=6, status="TERMINE", revenue=99999, created_at=utc(2023, 12, 1))


async def test_lead_sources(data_access, clock):
    seed_leads(data_access)
    report = await ReportsAggregator(data_access, ORG, clock=clock).run()
    conversion = report.conversion

    assert conversion.total_leads == 6
    assert conversion.qualified_leads == 2
    assert conversion.average_rate == pytest.approx(0.3333)
    assert [(s.source, s.leads, s.qualified) for s in conversion.sources] == [
        ("google", 3, 1),
        ("Autres", 2, 0),
        ("facebook", 1, 1),
    ]
    assert conversion.sources[0].conversion == pytest.approx(0.3333)


async def test_margin_prefers_persisted_value(data_access, clock):
    seed_sites(data_access)
    report = await ReportsAggregator(data_access, ORG, clock=clock, margin_target=0.3).run()

    # 0.4 persisted, 0.7 recomputed; site 3 has no revenue to recompute from
    assert report.margin.sample_size == 2
    assert report.margin.average == pytest.approx(0.55)
    assert report.margin.target == 0.3


async def test_site_durations_and_counts(data_access, clock):
    seed_sites(data_access)
    sites = (await ReportsAggregator(data_access, ORG, clock=clock).run()).sites

    # 10 and 3 days; the inverted site is excluded
    assert sites.duration_sample_size == 2
    assert sites.average_duration == 7
    assert sites.completed_count == 3
    assert sites.active_count == 2


async def test_top_projects_ranked_by_revenue(data_access, clock):
    seed_sites(data_access)
    sites = (await ReportsAggregator(data_access, ORG, clock=clock, top_limit=3).run()).sites

    assert [(p.id, p.revenue) for p in sites.top_projects] == [("3", 12000), ("1", 8000), ("2", 1000)]
    assert sites.top_projects[1].profit_margin == 0.4
    assert sites.top_projects[1].status_label == "Terminé"
    assert sites.top_projects[2].profit_margin == pytest.approx(0.7)


async def test_energy_covers_the_whole_year(data_access, clock):
    data_access.add(
        "projects",
        status="CHANTIER_TERMINE",
        building_type="Maison",
        updated_at=utc(2025, 2, 1),
        project_products=[{"quantity": 10, "product": INSULATION}],
    )
    data_access.add(
        "projects",
        status="NOUVEAU",
        building_type="Maison",
        updated_at=utc(2025, 2, 1),
        project_products=[{"quantity": 10, "product": INSULATION}],
    )
    report = await ReportsAggregator(data_access, ORG, clock=clock).run()
    assert report.energy.total_mwh == 15.0
    assert [(e.category, e.mwh) for e in report.energy.breakdown] == [("Isolation", 15.0)]


async def test_empty_organization(data_access, clock):
    report = await ReportsAggregator(data_access, ORG, clock=clock).run()
    assert report.conversion.sources == []
    assert report.conversion.average_rate == 0.0
    assert report.margin.average is None
    assert report.sites.average_duration is None
    assert report.sites.top_projects == []


def test_resolve_margin_rate():
    assert resolve_margin_rate({"profit_margin": "0.25"}) == 0.25
    assert resolve_margin_rate({"profit_margin": None, "revenue": None}) is None
    assert resolve_margin_rate({"profit_margin": float("inf"), "revenue": 100}) == 1.0


def test_site_duration_days():
    assert site_duration_days({"date_debut": date(2025, 1, 1), "date_fin": date(2025, 1, 1)}) == 0
    assert site_duration_days({"date_debut": date(2025, 1, 5), "date_fin": date(2025, 1, 1)}) is None
    assert site_duration_days({"date_debut": None, "date_fin": date(2025, 1, 1)}) is None


async def test_failed_query_fails_the_report(clock):
    data = FakeDataAccess(failing={"sites": DataAccessError("sites")})
    with pytest.raises(DataAccessError):
        await ReportsAggregator(data, ORG, clock=clock).run()
