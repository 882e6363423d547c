"""Unit conversion between stored (metric) values and the display system.

Values are always stored metric. Imperial conversion applies to a fixed set
of metric types; every other type passes through unchanged.
"""

from __future__ import annotations

from vitalog.core.storage.models import default_unit
from vitalog.domains.health.domain_logic.baseline import round_half_away

KG_TO_LBS = 2.20462
CM_PER_IN = 2.54
CM_PER_FT = 30.48
ML_PER_FLOZ = 29.5735

_IMPERIAL_UNITS = {
    "weight": "lbs",
    "waist": "in",
    "height": "ft",
    "water": "fl oz",
    "temperature": "°F",
}


def is_imperial(unit_system: str) -> bool:
    return unit_system == "imperial"


def converts(metric_type: str, unit_system: str) -> bool:
    """Whether a metric type is shown differently in this unit system."""
    return is_imperial(unit_system) and metric_type in _IMPERIAL_UNITS


def to_display(value: float, metric_type: str, unit_system: str) -> tuple[float, str]:
    """Stored value -> (display value, display unit)."""
    if not converts(metric_type, unit_system):
        return value, default_unit(metric_type)

    if metric_type == "weight":
        converted = value * KG_TO_LBS
    elif metric_type == "waist":
        converted = value / CM_PER_IN
    elif metric_type == "height":
        converted = value / CM_PER_FT
    elif metric_type == "water":
        converted = value / ML_PER_FLOZ
    else:
        converted = value * 1.8 + 32.0
    return round_half_away(converted), _IMPERIAL_UNITS[metric_type]


def display_unit(metric_type: str, unit_system: str) -> str:
    return to_display(0.0, metric_type, unit_system)[1]


def to_display_rate(rate: float, metric_type: str, unit_system: str) -> float:
    """Convert a change per period; temperature rates have no +32 offset."""
    if not converts(metric_type, unit_system):
        return rate
    if metric_type == "temperature":
        return round_half_away(rate * 1.8)
    return to_display(rate, metric_type, unit_system)[0]


def from_input(value: float, metric_type: str, unit_system: str) -> float:
    """User input in the configured system -> metric value for storage."""
    if not is_imperial(unit_system):
        return value
    if metric_type == "weight":
        return value / KG_TO_LBS
    if metric_type == "waist":
        return value * CM_PER_IN
    if metric_type == "height":
        return value * CM_PER_FT
    if metric_type == "water":
        return value * ML_PER_FLOZ
    if metric_type == "temperature":
        return (value - 32.0) / 1.8
    return value
