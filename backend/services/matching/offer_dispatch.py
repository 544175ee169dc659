"""
Ride offer fan-out.

Runs off the request path (see dispatcher.py):
1. Resolve distance/duration for the trip (degrades to no estimate)
2. Resolve pickup coordinates (degrades to the configured fallback point)
3. Find eligible drivers around the pickup point
4. Push the offer to every candidate that is currently connected

No acknowledgement is collected and several drivers may receive the same
offer; whoever accepts first wins the compare-and-set in accept_ride.
"""

import logging
from typing import Any, Dict, Optional

from django.conf import settings

from rides.models import Ride
from rides.serializers import RiderSnippetSerializer
from realtime.notifications import RIDE_REQUEST, notify_driver
from realtime.registry import ConnectionRegistry
from services.maps import Coordinates, GoogleMapsService, MapsServiceError, RouteEstimate, get_maps_service
from .locality import DriverCandidate, find_drivers_in_radius

logger = logging.getLogger(__name__)


def get_fallback_coordinates() -> Coordinates:
    lat, lon = getattr(settings, "DISPATCH_FALLBACK_COORDINATES", (28.7041, 77.1025))
    return Coordinates(latitude=float(lat), longitude=float(lon))


def _resolve_route(maps_service: GoogleMapsService, pickup, dropoff) -> Optional[RouteEstimate]:
    try:
        return maps_service.get_distance_time(pickup, dropoff)
    except (MapsServiceError, ValueError) as e:
        logger.warning("Route estimate unavailable for dispatch: %s", e)
        return None


def _resolve_pickup_point(ride: Ride, maps_service: GoogleMapsService, pickup) -> Coordinates:
    if ride.has_pickup_coordinates:
        return Coordinates(float(ride.pickup_latitude), float(ride.pickup_longitude))
    try:
        return maps_service.get_coordinates(pickup)
    except (MapsServiceError, ValueError) as e:
        fallback = get_fallback_coordinates()
        logger.warning(
            "Geocoding failed for pickup %r (%s), using fallback %s",
            pickup, e, fallback.as_param(),
        )
        return fallback


def build_offer_payload(
    ride: Ride,
    pickup,
    dropoff,
    estimate: Optional[RouteEstimate],
    pickup_point: Coordinates,
    payment_method: Optional[str],
    candidate: DriverCandidate,
    rider: Dict[str, Any],
) -> Dict[str, Any]:
    """Offer body sent to one driver."""
    return {
        "ride": {
            "id": ride.id,
            "pickup_address": str(pickup),
            "dropoff_address": str(dropoff),
            "vehicle_type": ride.vehicle_type,
            "fare": float(ride.fare or 0),
            "distance_km": estimate.distance_km if estimate else None,
            "duration_min": estimate.duration_min if estimate else None,
            "distance_text": estimate.distance_text if estimate else "",
            "duration_text": estimate.duration_text if estimate else "",
            "payment_method": payment_method or ride.payment_method,
            "pickup_coordinates": {
                "latitude": pickup_point.latitude,
                "longitude": pickup_point.longitude,
            },
            "driver_distance_km": round(candidate.distance_km, 2),
        },
        "rider": rider,
    }


def offer_ride(
    ride_id: int,
    pickup,
    dropoff,
    vehicle_type: Optional[str] = None,
    payment_method: Optional[str] = None,
    registry: Optional[ConnectionRegistry] = None,
    maps_service: Optional[GoogleMapsService] = None,
) -> int:
    """
    Offer a newly created ride to nearby connected drivers.

    Args:
        ride_id: ID of the ride to offer
        pickup: Pickup location as entered by the rider
        dropoff: Dropoff location as entered by the rider
        vehicle_type: Requested vehicle class (informational)
        payment_method: cash or electronic
        registry: Connection registry (process registry by default)
        maps_service: Maps adapter (process adapter by default)

    Returns:
        Number of drivers the offer was pushed to
    """
    ride = Ride.objects.select_related("passenger").filter(pk=ride_id).first()
    if ride is None:
        logger.warning("Ride %s vanished before dispatch", ride_id)
        return 0
    if ride.status != Ride.STATUS_PENDING:
        logger.info("Ride %s is already %s, skipping dispatch", ride.id, ride.status)
        return 0

    maps_service = maps_service or get_maps_service()
    estimate = _resolve_route(maps_service, pickup, dropoff)
    pickup_point = _resolve_pickup_point(ride, maps_service, pickup)

    candidates = find_drivers_in_radius(pickup_point.latitude, pickup_point.longitude)
    if not candidates:
        logger.warning("No drivers found in radius for ride %s; offer not delivered", ride.id)
        return 0

    rider = RiderSnippetSerializer(ride.passenger).data

    notified = 0
    for candidate in candidates:
        payload = build_offer_payload(
            ride, pickup, dropoff, estimate, pickup_point, payment_method, candidate, rider,
        )
        if notify_driver(RIDE_REQUEST, candidate.driver_id, payload, registry=registry):
            notified += 1

    logger.info(
        "Ride %s (%s) offered to %d of %d nearby driver(s)",
        ride.id, vehicle_type or ride.vehicle_type, notified, len(candidates),
    )
    return notified
