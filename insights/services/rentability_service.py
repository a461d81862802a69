"""Site rentability (margin) calculation.

Revenue = original revenue + CEE prime + client share of non-subsidized works.
Costs = labor and material per unit, itemized additional costs (with their
taxes or the site VAT rate), fixed and per-unit commission, the confirmed
subcontractor cost and the company share of non-subsidized works.
"""
from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal, Sequence

MeasurementMode = Literal["surface", "luminaire"]
TravauxOption = Literal["NA", "CLIENT", "MARGE", "PARTAGE"]

_TRUTHY = frozenset({"true", "t", "1", "oui", "yes", "on"})


def sanitize_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        match = re.match(r"\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?", value)
        if match:
            number = float(match.group(0))
            return number if math.isfinite(number) else 0.0
    return 0.0


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool) and math.isfinite(float(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


def _round_zero(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return 0.0 if abs(value) < 1e-6 else value


def _clamp_percentage(value: float) -> float:
    return min(max(value, 0.0), 100.0)


def normalize_travaux_option(value: Any) -> TravauxOption:
    normalized = str(value).strip().upper() if value else ""
    if normalized in ("CLIENT", "MARGE"):
        return normalized  # type: ignore[return-value]
    if normalized in ("PARTAGE", "MOITIE"):
        return "PARTAGE"
    return "NA"


@dataclass
class RentabilityInput:
    revenue: Any = None
    original_revenue: Any = None
    prime_cee: Any = None
    labor_cost_per_unit: Any = None
    material_cost_per_unit: Any = None
    units_used: Any = None
    billed_units: Any = None
    commission: Any = None
    commission_per_unit: Any = None
    commission_per_unit_active: Any = None
    travaux_option: Any = None
    travaux_amount: Any = None
    additional_costs: Sequence[dict | None] | None = None
    frais_tva_percentage: Any = None
    subcontractor_rate_per_unit: Any = None
    subcontractor_base_units: Any = None
    subcontractor_payment_confirmed: Any = None
    measurement_mode: MeasurementMode = "surface"
    unit_label: str | None = None
    project_category: str | None = None


@dataclass
class CostBreakdown:
    labor: float = 0.0
    material: float = 0.0
    commission: float = 0.0
    commission_per_unit: float = 0.0
    subcontractor: float = 0.0
    additional: float = 0.0
    travaux: float = 0.0


@dataclass
class RentabilityResult:
    revenue: float
    original_revenue: float
    prime_cee: float
    travaux_revenue: float
    travaux_cost: float
    total_costs: float
    additional_costs_total: float
    margin_total: float
    margin_per_unit: float
    margin_rate: float
    units_used: float
    base_units: float
    unit_label: str
    measurement_mode: MeasurementMode
    subcontractor_rate: float
    subcontractor_base_units: float
    subcontractor_estimated_cost: float
    subcontractor_payment_confirmed: bool
    cost_breakdown: CostBreakdown = field(default_factory=CostBreakdown)


def _additional_costs_total(costs: Sequence[dict | None] | None, vat_percentage: Any) -> float:
    rate = _clamp_percentage(max(0.0, sanitize_number(vat_percentage)))
    total = 0.0
    for cost in costs or ():
        if not isinstance(cost, dict):
            continue
        amount = max(0.0, sanitize_number(cost.get("amount_ht")))
        taxes = cost.get("taxes")
        if _is_finite_number(taxes):
            total += amount + max(0.0, float(taxes))
        else:
            total += amount + (amount * rate / 100 if rate > 0 else 0.0)
    return total


def calculate_rentability(data: RentabilityInput) -> RentabilityResult:
    original_source = data.original_revenue if data.original_revenue is not None else data.revenue
    original_revenue = max(0.0, sanitize_number(original_source))
    prime_cee = max(0.0, sanitize_number(data.prime_cee))
    labor_per_unit = max(0.0, sanitize_number(data.labor_cost_per_unit))
    material_per_unit = max(0.0, sanitize_number(data.material_cost_per_unit))

    mode: MeasurementMode = data.measurement_mode or "surface"
    default_label = "luminaire" if mode == "luminaire" else "m²"
    unit_label = (data.unit_label or "").strip() or default_label

    # Lighting is billed per luminaire, so billed units win over executed ones
    billed = max(0.0, sanitize_number(data.billed_units))
    executed = max(0.0, sanitize_number(data.units_used))
    category = _fold(data.project_category or "").strip()
    is_lighting = "eclair" in category or mode == "luminaire"
    base_units = (billed or executed) if is_lighting else (executed or billed)
    if base_units <= 0:
        base_units = max(billed, executed)
    effective_units = base_units if base_units > 0 else 0.0

    option = normalize_travaux_option(data.travaux_option)
    travaux_amount = max(0.0, sanitize_number(data.travaux_amount))
    travaux_revenue = travaux_cost = 0.0
    if travaux_amount > 0:
        if option == "CLIENT":
            travaux_revenue = travaux_amount
        elif option == "MARGE":
            travaux_cost = travaux_amount
        elif option == "PARTAGE":
            travaux_revenue = travaux_cost = travaux_amount / 2

    additional = _additional_costs_total(data.additional_costs, data.frais_tva_percentage)

    commission_fixed = max(0.0, sanitize_number(data.commission))
    commission_rate = max(0.0, sanitize_number(data.commission_per_unit))
    commission_per_unit_total = commission_rate * effective_units if _to_bool(data.commission_per_unit_active) else 0.0

    subcontractor_rate = max(0.0, sanitize_number(data.subcontractor_rate_per_unit))
    subcontractor_units = max(0.0, sanitize_number(data.subcontractor_base_units)) or base_units
    subcontractor_units = subcontractor_units if subcontractor_units > 0 else 0.0
    subcontractor_confirmed = _to_bool(data.subcontractor_payment_confirmed)
    subcontractor_estimated = subcontractor_units * subcontractor_rate
    subcontractor_cost = subcontractor_estimated if subcontractor_confirmed else 0.0

    labor_total = effective_units * labor_per_unit
    material_total = effective_units * material_per_unit

    revenue = original_revenue + prime_cee + travaux_revenue
    total_costs = (
        labor_total
        + material_total
        + additional
        + commission_fixed
        + commission_per_unit_total
        + subcontractor_cost
        + travaux_cost
    )
    margin_total = revenue - total_costs
    margin_rate = margin_total / revenue if revenue > 0 else 0.0
    margin_per_unit = margin_total / effective_units if effective_units > 0 else 0.0

    return RentabilityResult(
        revenue=_round_zero(revenue),
        original_revenue=_round_zero(original_revenue),
        prime_cee=_round_zero(prime_cee),
        travaux_revenue=_round_zero(travaux_revenue),
        travaux_cost=_round_zero(travaux_cost),
        total_costs=_round_zero(total_costs),
        additional_costs_total=_round_zero(additional),
        margin_total=_round_zero(margin_total),
        margin_per_unit=_round_zero(margin_per_unit),
        margin_rate=_round_zero(margin_rate),
        units_used=_round_zero(effective_units),
        base_units=_round_zero(base_units),
        unit_label=unit_label,
        measurement_mode=mode,
        subcontractor_rate=_round_zero(subcontractor_rate),
        subcontractor_base_units=_round_zero(subcontractor_units),
        subcontractor_estimated_cost=_round_zero(subcontractor_estimated),
        subcontractor_payment_confirmed=subcontractor_confirmed,
        cost_breakdown=CostBreakdown(
            labor=_round_zero(labor_total),
            material=_round_zero(material_total),
            commission=_round_zero(commission_fixed),
            commission_per_unit=_round_zero(commission_per_unit_total),
            subcontractor=_round_zero(subcontractor_cost),
            additional=_round_zero(additional),
            travaux=_round_zero(travaux_cost),
        ),
    )


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def is_led_product(product_name: str | None) -> bool:
    if not product_name:
        return False
    normalized = re.sub(r"[\W_]+", " ", _fold(product_name)).strip()
    return "led" in normalized or "luminaire" in normalized


def _subcontractor_rate(site: dict, base_units: float) -> float:
    """Pricing details first, then the stored payment rate, then amount per unit."""
    rate = sanitize_number(site.get("subcontractor_pricing_details"))
    if rate <= 0:
        stored_rate = sanitize_number(site.get("subcontractor_payment_rate"))
        stored_amount = sanitize_number(site.get("subcontractor_payment_amount"))
        if stored_rate > 0:
            rate = stored_rate
        elif base_units > 0 and stored_amount > 0:
            rate = stored_amount / base_units
    return rate if rate > 0 else 0.0


def build_rentability_input_from_site(site: dict) -> RentabilityInput:
    """Map a ``sites`` row onto the calculation input."""
    led = is_led_product(site.get("product_name"))
    category = site.get("project_category") or ("eclairage" if led else None)

    travaux_amount = site.get("travaux_non_subventionnes_montant")
    if not _is_finite_number(travaux_amount):
        raw = site.get("travaux_non_subventionnes")
        travaux_amount = raw if _is_finite_number(raw) else None

    prime = sanitize_number(site.get("valorisation_cee"))

    base_units = sanitize_number(site.get("subcontractor_base_units"))
    if base_units <= 0:
        base_units = sanitize_number(site.get("subcontractor_payment_units"))
    rate = _subcontractor_rate(site, base_units)

    return RentabilityInput(
        revenue=site.get("revenue"),
        original_revenue=site.get("revenue"),
        prime_cee=prime if prime > 0 else 0.0,
        labor_cost_per_unit=site.get("cout_main_oeuvre_m2_ht"),
        material_cost_per_unit=site.get("cout_isolation_m2"),
        units_used=sanitize_number(site.get("isolation_utilisee_m2")),
        billed_units=sanitize_number(site.get("surface_facturee")),
        commission=site.get("montant_commission"),
        commission_per_unit=sanitize_number(site.get("commission_eur_per_m2")),
        commission_per_unit_active=_to_bool(site.get("commission_eur_per_m2_enabled")),
        travaux_option=site.get("travaux_non_subventionnes"),
        travaux_amount=travaux_amount,
        additional_costs=site.get("additional_costs") if isinstance(site.get("additional_costs"), list) else None,
        frais_tva_percentage=site.get("frais_tva_percentage"),
        subcontractor_rate_per_unit=rate,
        subcontractor_base_units=base_units if base_units > 0 else 0.0,
        subcontractor_payment_confirmed=site.get("subcontractor_payment_confirmed"),
        measurement_mode="luminaire" if led else "surface",
        unit_label="luminaire" if led else "m²",
        project_category=category,
    )
