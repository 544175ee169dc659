"""
Routing and geocoding adapter.

Wraps the external maps provider and normalizes its responses.
"""

from .exceptions import MapsServiceError, ProviderUnavailable, RouteNotFound, ProviderError
from .google import Coordinates, RouteEstimate, GoogleMapsService, get_maps_service, normalize_location

__all__ = [
    "Coordinates",
    "RouteEstimate",
    "GoogleMapsService",
    "get_maps_service",
    "normalize_location",
    "MapsServiceError",
    "ProviderUnavailable",
    "RouteNotFound",
    "ProviderError",
]
