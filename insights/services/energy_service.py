"""Energy-savings (MWh cumac) aggregation over installed project products.

For every product line of a project:
    MWh = kWh cumac coefficient / 1000 × multiplier

The coefficient depends on the project's building type and, when the catalog
provides split values, on whether the building is under 400 m². The
multiplier is the first positive dynamic parameter matching the product's
parameter schema (surface isolée, nombre de LED, ...), else the line quantity.
"""
from __future__ import annotations

import logging
import math
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from insights.models.schemas import EnergyBreakdownEntry

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Autres"
EXCLUDED_PREFIXES = ("ECO",)
SURFACE_THRESHOLD_M2 = 400

# Dynamic parameter lookup order; names and labels are compared accent/case-insensitively
MULTIPLIER_PRIORITIES: tuple[tuple[str, ...], ...] = (
    ("surface_isolee", "surface isolée"),
    ("nombre_led", "nombre de led"),
    ("quantity", "quantité"),
    ("surface_facturee", "surface facturée"),
    ("nombre_de_luminaire", "nombre de luminaire", "nombre_luminaire"),
    ("surface",),
)


@dataclass
class EnergyAggregation:
    total_mwh: float = 0.0
    breakdown: list[EnergyBreakdownEntry] = field(default_factory=list)


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float("".join(value.split()).replace(",", "."))
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    try:
        parsed = float(value)  # Decimal
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def schema_fields(params_schema: Any) -> list[dict]:
    """Field definitions of a product parameter schema (a list, or ``{"fields": [...]}``)."""
    if isinstance(params_schema, list):
        return [f for f in params_schema if isinstance(f, dict)]
    if isinstance(params_schema, dict) and isinstance(params_schema.get("fields"), list):
        return [f for f in params_schema["fields"] if isinstance(f, dict)]
    return []


def _matches(field_def: dict, targets: Iterable[str]) -> bool:
    name = _fold(field_def["name"]) if isinstance(field_def.get("name"), str) else ""
    label = _fold(field_def["label"]) if isinstance(field_def.get("label"), str) else ""
    return any(_fold(target) in (name, label) for target in targets)


def multiplier_value(product: dict, project_product: dict) -> float | None:
    fields = schema_fields(product.get("params_schema"))
    params = project_product.get("dynamic_params")
    if isinstance(params, dict):
        for targets in MULTIPLIER_PRIORITIES:
            match = next((f for f in fields if _matches(f, targets)), None)
            if match is None or not isinstance(match.get("name"), str):
                continue
            value = to_number(params.get(match["name"]))
            if value and value > 0:
                return value
    return to_number(project_product.get("quantity"))


def is_product_excluded(product: dict) -> bool:
    category = (product.get("category") or "").upper()
    code = (product.get("code") or "").upper()
    return any(category.startswith(p) or code.startswith(p) for p in EXCLUDED_PREFIXES)


def kwh_coefficient(entry: dict, building_surface_m2: Any) -> float | None:
    """kWh cumac per unit for one building-type row of the catalog."""
    surface = to_number(building_surface_m2)
    lt_400 = to_number(entry.get("kwh_cumac_lt_400"))
    gte_400 = to_number(entry.get("kwh_cumac_gte_400"))
    base = to_number(entry.get("kwh_cumac"))
    if surface is not None and surface > 0:
        preferred = lt_400 if surface < SURFACE_THRESHOLD_M2 else gte_400
        candidates = (preferred, base, gte_400, lt_400)
    else:
        candidates = (base, lt_400, gte_400)
    return next((c for c in candidates if c is not None), None)


def _category(product: dict) -> str:
    category = (product.get("category") or "").strip()
    return category or DEFAULT_CATEGORY


def aggregate_energy_by_category(
    projects: Iterable[dict],
    include: Callable[[dict], bool] | None = None,
) -> EnergyAggregation:
    """Sum MWh per product category over ``projects`` (rows with nested products)."""
    totals: dict[str, float] = {}
    for project in projects:
        if include is not None and not include(project):
            continue
        building_type = project.get("building_type")
        if not building_type:
            continue
        for line in project.get("project_products") or ():
            product = line.get("product") if line else None
            if not product or is_product_excluded(product):
                continue
            entry = next(
                (e for e in product.get("kwh_cumac_values") or () if e and e.get("building_type") == building_type),
                None,
            )
            if entry is None:
                continue
            coefficient = kwh_coefficient(entry, project.get("surface_batiment_m2"))
            multiplier = multiplier_value(product, line)
            if coefficient is None or not multiplier or multiplier <= 0:
                continue
            mwh = coefficient / 1000 * multiplier
            if not math.isfinite(mwh) or mwh <= 0:
                continue
            category = _category(product)
            totals[category] = totals.get(category, 0.0) + mwh

    breakdown = [
        EnergyBreakdownEntry(category=category, mwh=round(value, 2))
        for category, value in totals.items()
        if round(value, 2) > 0
    ]
    breakdown.sort(key=lambda entry: (-entry.mwh, entry.category))
    return EnergyAggregation(total_mwh=round(sum(totals.values()), 2), breakdown=breakdown)
