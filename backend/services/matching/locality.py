"""
Find eligible drivers around a point.

Linear scan over active drivers with a last-reported location, filtered by
Haversine distance. Closest drivers come first.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings

from drivers.models import DriverProfile
from common.utils import calculate_distance_km

logger = logging.getLogger(__name__)


@dataclass
class DriverCandidate:
    profile: DriverProfile
    distance_km: float

    @property
    def driver_id(self) -> int:
        return self.profile.user_id


def get_dispatch_radius_km() -> float:
    return float(getattr(settings, "DISPATCH_RADIUS_KM", 10))


def find_drivers_in_radius(
    latitude: float,
    longitude: float,
    radius_km: Optional[float] = None,
) -> List[DriverCandidate]:
    """
    Eligible drivers within ``radius_km`` of the center point.

    Args:
        latitude: Center latitude
        longitude: Center longitude
        radius_km: Search radius in kilometers (DISPATCH_RADIUS_KM by default)

    Returns:
        List of DriverCandidate sorted by distance (closest first); empty when
        nobody qualifies
    """
    if radius_km is None:
        radius_km = get_dispatch_radius_km()

    eligible = (
        DriverProfile.objects.select_related("user")
        .filter(
            status=DriverProfile.STATUS_ACTIVE,
            current_latitude__isnull=False,
            current_longitude__isnull=False,
        )
    )

    candidates: List[DriverCandidate] = []
    for profile in eligible:
        distance = calculate_distance_km(
            latitude,
            longitude,
            profile.current_latitude,
            profile.current_longitude,
        )
        if distance <= radius_km:
            candidates.append(DriverCandidate(profile=profile, distance_km=distance))

    candidates.sort(key=lambda candidate: candidate.distance_km)

    logger.info(
        "Found %d driver(s) within %s km of (%s, %s)",
        len(candidates), radius_km, latitude, longitude,
    )
    return candidates
