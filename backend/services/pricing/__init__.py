"""Trip pricing."""

from .fare import calculate_fare, resolve_vehicle_type

__all__ = [
    "calculate_fare",
    "resolve_vehicle_type",
]
