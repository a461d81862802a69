"""Common base and helpers for schemas."""
from __future__ import annotations

import math
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys (``caMois``, ``isoMonth``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def to_amount(value: Any) -> float:
    """Monetary/physical value as float; null, blank or non-finite input counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else 0.0
    if isinstance(value, str):
        try:
            value = float(value.replace(" ", "").replace(",", "."))
        except ValueError:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0
