"""
Google Maps adapter for distance/duration, geocoding and place suggestions.

This is the only place provider semantics live: every caller consumes the
normalized values returned here (kilometers rounded to 2 places, minutes
rounded to the nearest whole minute).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from django.conf import settings

from .exceptions import ProviderError, ProviderUnavailable, RouteNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def as_param(self) -> str:
        return f"{self.latitude},{self.longitude}"


@dataclass(frozen=True)
class RouteEstimate:
    """Normalized distance/duration between two locations."""
    distance_km: float
    duration_min: int
    distance_text: str
    duration_text: str


Location = Union[str, Coordinates, Tuple[float, float], Dict[str, Any]]

# Statuses meaning "no such route / place" rather than a provider fault
NOT_FOUND_STATUSES = {"NOT_FOUND", "ZERO_RESULTS", "MAX_ROUTE_LENGTH_EXCEEDED"}
# Statuses meaning the provider refused us (bad or missing credential, quota)
UNAVAILABLE_STATUSES = {"REQUEST_DENIED", "OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT"}


def normalize_location(location: Location) -> str:
    """Render a free-text address or a coordinate pair the way the provider expects."""
    if isinstance(location, Coordinates):
        return location.as_param()
    if isinstance(location, dict):
        lat = location.get("latitude", location.get("lat"))
        lon = location.get("longitude", location.get("lng"))
        if lat is None or lon is None:
            raise ValueError("Coordinate location requires latitude and longitude")
        return Coordinates(float(lat), float(lon)).as_param()
    if isinstance(location, (tuple, list)):
        lat, lon = location
        return Coordinates(float(lat), float(lon)).as_param()
    text = str(location or "").strip()
    if not text:
        raise ValueError("Location is required")
    return text


def _round_km(meters: Any) -> float:
    km = Decimal(str(meters)) / Decimal(1000)
    return float(km.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _round_minutes(seconds: Any) -> int:
    minutes = Decimal(str(seconds)) / Decimal(60)
    return int(minutes.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class GoogleMapsService:
    """
    Client for the Google Distance Matrix, Geocoding and Places APIs.

    Responsibilities:
    - Translate locations into request parameters
    - Bound every call with a timeout
    - Map transport failures and provider statuses onto
      ProviderUnavailable / RouteNotFound / ProviderError
    """

    DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
    GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
    PLACES_TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None, region: Optional[str] = None):
        self.api_key = api_key if api_key is not None else getattr(settings, "GOOGLE_MAPS_API_KEY", "")
        self.timeout = timeout if timeout is not None else getattr(settings, "MAPS_REQUEST_TIMEOUT", 10)
        self.region = region if region is not None else getattr(settings, "MAPS_REGION", "in")

    # ---------------------- Transport ----------------------

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderUnavailable("Google Maps API key is not configured")

        try:
            response = requests.get(url, params={**params, "key": self.api_key}, timeout=self.timeout)
            response.raise_for_status()
        except (requests.ConnectionError, requests.Timeout) as e:
            raise ProviderUnavailable(f"Maps provider unreachable: {e}")
        except requests.RequestException as e:
            raise ProviderError(f"Maps request failed: {e}")

        try:
            return response.json()
        except ValueError:
            raise ProviderError("Maps provider returned a malformed response")

    @staticmethod
    def _check_status(status: Optional[str], what: str, data: Dict[str, Any]) -> None:
        if status == "OK":
            return
        message = data.get("error_message") or status or "Unknown error"
        if status in NOT_FOUND_STATUSES:
            raise RouteNotFound(f"{what}: {message}")
        if status in UNAVAILABLE_STATUSES:
            raise ProviderUnavailable(f"{what}: {message}")
        raise ProviderError(f"{what}: {message}")

    # ---------------------- Public API ----------------------

    def get_distance_time(self, origin: Location, destination: Location) -> RouteEstimate:
        """
        Driving distance and duration between two locations.

        Raises:
            ProviderUnavailable, RouteNotFound, ProviderError
        """
        data = self._get(self.DISTANCE_MATRIX_URL, {
            "origins": normalize_location(origin),
            "destinations": normalize_location(destination),
            "mode": "driving",
            "units": "metric",
        })
        self._check_status(data.get("status"), "Distance Matrix error", data)

        rows = data.get("rows") or [{}]
        elements = rows[0].get("elements") or [{}]
        element = elements[0]
        element_status = element.get("status")
        if element_status != "OK":
            if element_status in NOT_FOUND_STATUSES or element_status is None:
                raise RouteNotFound(f"Route not found: {element_status or 'no result'}")
            raise ProviderError(f"Route lookup failed: {element_status}")

        distance = element.get("distance") or {}
        duration = element.get("duration") or {}
        return RouteEstimate(
            distance_km=_round_km(distance.get("value", 0)),
            duration_min=_round_minutes(duration.get("value", 0)),
            distance_text=distance.get("text", ""),
            duration_text=duration.get("text", ""),
        )

    def get_coordinates(self, address: str) -> Coordinates:
        """Geocode a free-text address."""
        data = self._get(self.GEOCODE_URL, {
            "address": normalize_location(address),
            "region": self.region,
        })
        self._check_status(data.get("status"), "Geocoding failed", data)

        results = data.get("results") or []
        if not results:
            raise RouteNotFound(f"No coordinates found for address: {address}")

        location = results[0]["geometry"]["location"]
        return Coordinates(latitude=location["lat"], longitude=location["lng"])

    def get_suggestions(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Place suggestions for partially typed input (empty list when nothing matches)."""
        text = (query or "").strip()
        if not text:
            raise ValueError("Input is required")

        data = self._get(self.PLACES_TEXT_SEARCH_URL, {
            "query": text,
            "region": self.region,
            "language": "en",
        })
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        self._check_status(status, "Places API error", data)

        suggestions = []
        for place in (data.get("results") or [])[:limit]:
            name = place.get("name", "")
            address = place.get("formatted_address", "")
            suggestions.append({
                "description": f"{name}, {address}" if address else name,
                "place_id": place.get("place_id"),
                "main_text": name,
                "secondary_text": address,
            })
        return suggestions


_maps_service: Optional[GoogleMapsService] = None


def get_maps_service() -> GoogleMapsService:
    """Get singleton GoogleMapsService instance."""
    global _maps_service
    if _maps_service is None:
        _maps_service = GoogleMapsService()
    return _maps_service
