"""Tests for the dashboard KPI snapshot."""
import asyncio
from datetime import date, timedelta

import pytest

from conftest import NOW, ORG, OTHER_ORG, FakeDataAccess, utc
from insights.core.exceptions import DataAccessError, MissingOrganizationError
from insights.db.data_access import Filter
from insights.services.metrics_service import MetricsAggregator, conversion_rate

TODAY = NOW.date()

INSULATION = {
    "code": "BAR-EN-101",
    "category": "Isolation",
    "params_schema": [{"name": "surface_isolee", "label": "Surface isolée"}],
    "kwh_cumac_values": [{"building_type": "Maison", "kwh_cumac": 1600, "kwh_cumac_lt_400": 1700}],
}


def seed(data: FakeDataAccess) -> None:
    data.add("leads", status="À rappeler", date_rdv=utc(2025, 6, 17, 9), updated_at=utc(2025, 6, 1))
    data.add("leads", status="Phoning", date_rdv=utc(2025, 6, 23, 9), updated_at=utc(2025, 6, 1))
    data.add("leads", status="Non éligible", date_rdv=None, updated_at=utc(2025, 6, 1))
    data.add("leads", org_id=OTHER_ORG, status="Phoning", date_rdv=utc(2025, 6, 18, 9))

    data.add(
        "projects",
        status="CHANTIER_EN_COURS",
        building_type="Maison",
        surface_batiment_m2=120,
        updated_at=utc(2025, 6, 1),
        project_products=[{"quantity": 1, "dynamic_params": {"surface_isolee": 80}, "product": INSULATION}],
    )
    data.add("projects", status="NOUVEAU", updated_at=utc(2025, 6, 1), project_products=[])
    data.add("projects", status="LIVRE", updated_at=utc(2025, 6, 1), project_products=[])
    data.add("projects", status="ANNULE", updated_at=utc(2025, 6, 1), project_products=[])

    data.add("quotes", status="SENT", valid_until=TODAY + timedelta(days=7))
    data.add("quotes", status="SENT", valid_until=TODAY + timedelta(days=8))
    data.add("quotes", status="SENT", valid_until=None)
    data.add("quotes", status="ACCEPTED", valid_until=TODAY)

    data.add("sites", status="EN_COURS", date_fin_prevue=TODAY + timedelta(days=3))
    data.add("sites", status="EN_COURS", date_fin_prevue=TODAY + timedelta(days=10))
    data.add("sites", status="PLANIFIE", date_fin_prevue=TODAY + timedelta(days=2))
    data.add(
        "sites",
        status="TERMINE",
        date_fin=TODAY,
        ca_ttc=1000,
        marge_totale_ttc=300,
        project_category="Isolation",
        surface_facturee_m2=50,
    )
    data.add(
        "sites",
        status="TERMINE",
        date_fin=date(2025, 6, 2),
        ca_ttc=None,
        marge_totale_ttc=None,
        project_category="Éclairage",
        nb_luminaires=12,
    )
    data.add("sites", status="TERMINE", date_fin=date(2025, 5, 30), ca_ttc=5000)
    data.add("sites", org_id=OTHER_ORG, status="TERMINE", date_fin=TODAY, ca_ttc=7777)


async def test_snapshot_counts_and_totals(data_access, clock):
    seed(data_access)
    metrics = await MetricsAggregator(data_access, ORG, clock=clock).run()

    assert metrics.leads_actifs == 2
    assert metrics.rdv_programmes_semaine == 1
    assert metrics.projets_en_cours == 2  # CHANTIER_EN_COURS and NOUVEAU
    assert metrics.devis_en_attente == 3
    assert metrics.devis_expirant_sous_7_jours == 1
    assert metrics.chantiers_ouverts == 3
    assert metrics.chantiers_fin_semaine == 1
    assert metrics.ca_mois == 1000
    assert metrics.ca_semaine == 1000
    assert metrics.marge_totale_mois == 300
    assert metrics.surface_isolee_mois == 50
    assert metrics.led_installees_mois == 12
    assert metrics.total_mwh == 136.0
    assert [(e.category, e.mwh) for e in metrics.energy_by_category] == [("Isolation", 136.0)]
    assert metrics.generated_at == NOW


async def test_null_revenue_counts_as_zero(data_access, clock):
    data_access.add("sites", status="TERMINE", date_fin=TODAY, ca_ttc=None, marge_totale_ttc=None)
    metrics = await MetricsAggregator(data_access, ORG, clock=clock).run()
    assert metrics.ca_mois == 0
    assert metrics.ca_semaine == 0
    assert metrics.marge_totale_mois == 0


async def test_snapshot_is_idempotent(data_access, clock):
    seed(data_access)
    first = await MetricsAggregator(data_access, ORG, clock=clock).run()
    second = await MetricsAggregator(data_access, ORG, clock=clock).run()
    assert first.model_dump_json(by_alias=True) == second.model_dump_json(by_alias=True)


async def test_conversion_delta_is_null_without_signal(data_access, clock):
    metrics = await MetricsAggregator(data_access, ORG, clock=clock).run()
    assert metrics.taux_conversion.rate == 0.0
    assert metrics.taux_conversion.delta is None
    assert metrics.model_dump(by_alias=True)["tauxConversion"] == {"rate": 0.0, "delta": None}


async def test_conversion_rate_and_delta(data_access, clock):
    for days in (10, 20):
        data_access.add("leads", status="Éligible", updated_at=NOW - timedelta(days=days))
    data_access.add("leads", status="Éligible", updated_at=NOW - timedelta(days=100))
    data_access.add("leads", status="Éligible", updated_at=NOW - timedelta(days=200))
    data_access.add("projects", status="DEVIS_SIGNE", updated_at=NOW - timedelta(days=5), project_products=[])
    data_access.add("projects", status="DEVIS_SIGNE", updated_at=NOW - timedelta(days=120), project_products=[])

    metrics = await MetricsAggregator(data_access, ORG, clock=clock).run()

    # 1 / 2 now against 1 / 1 in the previous window
    assert metrics.taux_conversion.rate == 50.0
    assert metrics.taux_conversion.delta == -50.0


async def test_conversion_window_is_configurable(data_access, clock):
    data_access.add("leads", status="Éligible", updated_at=NOW - timedelta(days=20))
    data_access.add("projects", status="DEVIS_SIGNE", updated_at=NOW - timedelta(days=20), project_products=[])
    metrics = await MetricsAggregator(data_access, ORG, clock=clock, conversion_window_days=10).run()
    assert metrics.taux_conversion.rate == 0.0
    assert metrics.taux_conversion.delta == -100.0


def test_conversion_rate_helper():
    assert conversion_rate(0, 3) == 0.0
    assert conversion_rate(4, 1) == 25.0


@pytest.mark.parametrize("org_id", [None, "", "   "])
async def test_missing_organization_fails_before_any_query(data_access, org_id):
    with pytest.raises(MissingOrganizationError) as exc_info:
        MetricsAggregator(data_access, org_id)
    assert exc_info.value.code == "VAL001"
    assert data_access.calls == []


async def test_every_query_is_scoped_to_the_organization(data_access, clock):
    seed(data_access)
    await MetricsAggregator(data_access, ORG, clock=clock).run()
    assert len(data_access.calls) == 10  # status settings + nine sub-queries
    for _, _, filters in data_access.calls:
        assert Filter.eq("org_id", ORG) in filters


async def test_first_failure_propagates_and_cancels_the_rest(clock):
    error = DataAccessError("quotes", "connection reset")
    data = FakeDataAccess(failing={"quotes": error}, delays={"sites": 5})
    with pytest.raises(DataAccessError) as exc_info:
        await asyncio.wait_for(MetricsAggregator(data, ORG, clock=clock).run(), timeout=2)
    assert exc_info.value is error
    assert "sites" in data.cancelled
