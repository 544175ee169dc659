"""
Fare calculation.

A fare is ``base + distance * per_km + duration * per_minute`` for the
vehicle class, rounded half-up to two decimal places. Rates are read from
``settings.FARE_RATES``; an unknown or missing vehicle class is priced with
``settings.DEFAULT_VEHICLE_TYPE``.
"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

# Inputs above this are treated as malformed; keeps quantize within precision
MAX_INPUT = Decimal("1e9")

DEFAULT_FARE_RATES = {
    "car": {"base": 50, "per_km": 15, "per_minute": 3},
    "auto": {"base": 25, "per_km": 12, "per_minute": 2},
    "bike": {"base": 20, "per_km": 8, "per_minute": 1.5},
    "motorcycle": {"base": 20, "per_km": 8, "per_minute": 1.5},
}


def get_fare_rates() -> Dict[str, Dict[str, Any]]:
    return getattr(settings, "FARE_RATES", None) or DEFAULT_FARE_RATES


def get_default_vehicle_type() -> str:
    return getattr(settings, "DEFAULT_VEHICLE_TYPE", "car")


def resolve_vehicle_type(vehicle_type: Optional[str]) -> str:
    """Return the rate-table key used to price ``vehicle_type``."""
    rates = get_fare_rates()
    key = (vehicle_type or "").strip().lower()
    if key in rates:
        return key
    return get_default_vehicle_type()


def _to_decimal(value: Any) -> Decimal:
    """Coerce a numeric-ish input to a finite Decimal in [0, MAX_INPUT] (0 otherwise)."""
    if isinstance(value, bool) or value is None:
        return Decimal("0")
    try:
        if isinstance(value, float) and not math.isfinite(value):
            return Decimal("0")
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    if not number.is_finite() or number < 0 or number > MAX_INPUT:
        return Decimal("0")
    return number


def calculate_fare(distance_km: Any, duration_min: Any, vehicle_type: Optional[str] = None) -> Decimal:
    """
    Price a trip.

    Args:
        distance_km: Trip distance in kilometers
        duration_min: Trip duration in minutes
        vehicle_type: Vehicle class key (car, auto, bike, ...)

    Returns:
        Fare as a Decimal with two decimal places. Malformed, negative,
        non-finite or absurdly large inputs are treated as 0, so the result
        is never negative and never raises.
    """
    rate_key = resolve_vehicle_type(vehicle_type)
    rate = get_fare_rates()[rate_key]

    distance = _to_decimal(distance_km)
    duration = _to_decimal(duration_min)

    fare = (
        _to_decimal(rate.get("base"))
        + distance * _to_decimal(rate.get("per_km"))
        + duration * _to_decimal(rate.get("per_minute"))
    )
    fare = fare.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    logger.debug(
        "Fare for %s: distance=%s km, duration=%s min -> %s",
        rate_key, distance, duration, fare,
    )
    return fare
