"""Tests for the site rentability calculation."""
import pytest

from insights.services.rentability_service import (
    RentabilityInput,
    build_rentability_input_from_site,
    calculate_rentability,
    is_led_product,
    normalize_travaux_option,
    sanitize_number,
)


def test_basic_surface_margin():
    result = calculate_rentability(
        RentabilityInput(
            revenue=10000,
            labor_cost_per_unit=10,
            material_cost_per_unit=5,
            units_used=100,
            billed_units=120,
            commission=500,
        )
    )
    assert result.units_used == 100
    assert result.cost_breakdown.labor == 1000
    assert result.cost_breakdown.material == 500
    assert result.total_costs == 2000
    assert result.margin_total == 8000
    assert result.margin_rate == pytest.approx(0.8)
    assert result.margin_per_unit == 80
    assert result.unit_label == "m²"


def test_lighting_uses_billed_units():
    result = calculate_rentability(
        RentabilityInput(
            revenue=4000,
            labor_cost_per_unit=10,
            units_used=30,
            billed_units=40,
            project_category="Éclairage",
        )
    )
    assert result.base_units == 40
    assert result.cost_breakdown.labor == 400


@pytest.mark.parametrize(
    ("option", "revenue", "cost"),
    [("CLIENT", 11000, 0), ("MARGE", 10000, 1000), ("moitie", 10500, 500), ("autre", 10000, 0)],
)
def test_non_subsidized_works_options(option, revenue, cost):
    result = calculate_rentability(RentabilityInput(revenue=10000, travaux_option=option, travaux_amount=1000))
    assert result.revenue == revenue
    assert result.travaux_cost == cost


def test_additional_costs_use_taxes_or_vat_rate():
    result = calculate_rentability(
        RentabilityInput(
            revenue=1000,
            additional_costs=[{"amount_ht": 100, "taxes": 20}, {"amount_ht": 200}, None],
            frais_tva_percentage=10,
        )
    )
    assert result.additional_costs_total == pytest.approx(340)
    assert result.margin_total == pytest.approx(660)


def test_subcontractor_cost_only_when_confirmed():
    base = dict(revenue=5000, units_used=100, subcontractor_rate_per_unit=2)
    unconfirmed = calculate_rentability(RentabilityInput(**base, subcontractor_payment_confirmed="non"))
    confirmed = calculate_rentability(RentabilityInput(**base, subcontractor_payment_confirmed="oui"))
    assert unconfirmed.subcontractor_estimated_cost == 200
    assert unconfirmed.cost_breakdown.subcontractor == 0
    assert confirmed.cost_breakdown.subcontractor == 200
    assert confirmed.margin_total == 4800


def test_zero_revenue_gives_zero_rate():
    result = calculate_rentability(RentabilityInput(labor_cost_per_unit=10, units_used=5))
    assert result.revenue == 0
    assert result.margin_rate == 0
    assert result.margin_total == -50


def test_sanitize_number():
    assert sanitize_number("12.5 €") == 12.5
    assert sanitize_number("abc") == 0
    assert sanitize_number(float("inf")) == 0
    assert sanitize_number(True) == 0


def test_normalize_travaux_option():
    assert normalize_travaux_option(" client ") == "CLIENT"
    assert normalize_travaux_option(None) == "NA"


def test_led_detection():
    assert is_led_product("Luminaire LED 50W")
    assert is_led_product("Réglette-led")
    assert not is_led_product("Laine de verre")
    assert not is_led_product(None)


def test_input_from_led_site():
    site = {
        "revenue": 3000,
        "product_name": "Projecteur LED",
        "surface_facturee": 25,
        "isolation_utilisee_m2": None,
        "travaux_non_subventionnes": "CLIENT",
        "travaux_non_subventionnes_montant": 200,
        "valorisation_cee": -5,
        "subcontractor_pricing_details": "3.5",
    }
    data = build_rentability_input_from_site(site)
    assert data.measurement_mode == "luminaire"
    assert data.project_category == "eclairage"
    assert data.billed_units == 25
    assert data.prime_cee == 0
    assert data.subcontractor_rate_per_unit == 3.5
    assert calculate_rentability(data).revenue == 3200


@pytest.mark.parametrize(
    "stored, expected_rate",
    [
        ({"subcontractor_payment_rate": 4}, 4.0),
        ({"subcontractor_payment_amount": 300, "subcontractor_base_units": 100}, 3.0),
        ({"subcontractor_payment_amount": 300, "subcontractor_payment_units": 60}, 5.0),
        ({"subcontractor_payment_amount": 300}, 0.0),
    ],
)
def test_subcontractor_rate_falls_back_to_stored_payment(stored, expected_rate):
    site = {"revenue": 5000, "subcontractor_pricing_details": "", **stored}
    assert build_rentability_input_from_site(site).subcontractor_rate_per_unit == expected_rate


def test_pricing_details_take_precedence_over_stored_rate():
    site = {"subcontractor_pricing_details": "2.5 €/m²", "subcontractor_payment_rate": 4}
    assert build_rentability_input_from_site(site).subcontractor_rate_per_unit == 2.5
