"""Weight units and gram conversions.

Weights are stored as integer grams and modelled in kilograms. User-facing
input and output may be in kilograms or pounds.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Union

GRAMS_PER_KILOGRAM = 1000.0
GRAMS_PER_POUND = 453.59237


class WeightUnit(Enum):
    """Display/input unit for body weight."""

    KG = "kg"
    LB = "lb"

    @classmethod
    def parse(cls, value: Union[str, "WeightUnit"]) -> "WeightUnit":
        """Parse a unit from a case-insensitive string ('kg', 'lb', 'lbs')."""
        if isinstance(value, WeightUnit):
            return value
        normalized = str(value).strip().lower()
        if normalized in ("lbs", "pound", "pounds"):
            normalized = "lb"
        if normalized in ("kgs", "kilogram", "kilograms"):
            normalized = "kg"
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"unit must be 'kg' or 'lb', got '{value}'") from None


def parse_weight_to_grams(value: Union[float, int, str], unit: WeightUnit) -> int:
    """
    Parse a user-entered weight into integer grams.

    The value is rounded to one decimal place in its own unit before
    conversion, so 80.04 kg and 80.0 kg store identically.

    Raises:
        ValueError: If the value is not a finite number or is not positive
    """
    if isinstance(value, bool):
        raise ValueError("Invalid weight")
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        raise ValueError("Invalid weight") from None

    if not math.isfinite(numeric):
        raise ValueError("Invalid weight")

    rounded_to_tenth = round(numeric * 10) / 10
    if rounded_to_tenth <= 0:
        raise ValueError("Weight must be positive")

    if unit is WeightUnit.KG:
        grams = rounded_to_tenth * GRAMS_PER_KILOGRAM
    else:
        grams = rounded_to_tenth * GRAMS_PER_POUND
    return int(round(grams))


def grams_to_weight(grams: float, unit: WeightUnit) -> float:
    """Convert grams to a display weight rounded to one decimal place."""
    if not math.isfinite(grams):
        raise ValueError("Invalid weight")
    if unit is WeightUnit.KG:
        weight = grams / GRAMS_PER_KILOGRAM
    else:
        weight = grams / GRAMS_PER_POUND
    return round(weight * 10) / 10


def grams_to_kilograms(grams: float) -> float:
    return grams / GRAMS_PER_KILOGRAM


def kilograms_to_grams(kilograms: float) -> int:
    """Round a kilogram model output to integer grams for persistence."""
    return int(round(kilograms * GRAMS_PER_KILOGRAM))


def kilograms_to_unit(kilograms: float, unit: WeightUnit) -> float:
    """Convert kilograms to the given unit without rounding."""
    if unit is WeightUnit.KG:
        return kilograms
    return kilograms * GRAMS_PER_KILOGRAM / GRAMS_PER_POUND


def unit_to_kilograms(weight: float, unit: WeightUnit) -> float:
    """Convert a weight in the given unit to kilograms without rounding."""
    if unit is WeightUnit.KG:
        return weight
    return weight * GRAMS_PER_POUND / GRAMS_PER_KILOGRAM
