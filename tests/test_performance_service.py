"""Tests for operational performance rates."""
from datetime import date

from conftest import ORG, OTHER_ORG
from insights.services.performance_service import PerformanceMetricsAggregator, percentage


async def test_rates(data_access, clock):
    for status in ("Éligible", "Éligible", "Phoning"):
        data_access.add("leads", status=status)
    data_access.add("leads", org_id=OTHER_ORG, status="Phoning")
    for status in ("CHANTIER_TERMINE", "LIVRE", "NOUVEAU", "DEVIS_SIGNE"):
        data_access.add("projects", status=status)
    data_access.add("sites", status="TERMINE", date_fin=date(2025, 3, 1), date_fin_prevue=date(2025, 3, 1))
    data_access.add("sites", status="LIVRE", date_fin=date(2025, 3, 5), date_fin_prevue=date(2025, 3, 1))
    data_access.add("sites", status="TERMINE", date_fin=None, date_fin_prevue=date(2025, 3, 1))
    data_access.add("sites", status="EN_COURS")

    result = await PerformanceMetricsAggregator(data_access, ORG, clock=clock).run()

    assert result.conversion_rate == 66.67
    assert result.closure_rate == 50.0
    assert result.on_time_completion == 33.33
    assert result.utilization_rate == 25.0
    assert result.model_dump(by_alias=True)["onTimeCompletion"] == 33.33


async def test_empty_organization_has_zero_rates(data_access, clock):
    result = await PerformanceMetricsAggregator(data_access, ORG, clock=clock).run()
    assert result.conversion_rate == result.closure_rate == result.on_time_completion == result.utilization_rate == 0.0


def test_percentage():
    assert percentage(1, 3) == 33.33
    assert percentage(5, 0) == 0.0
