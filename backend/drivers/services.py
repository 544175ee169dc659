import logging

from django.utils import timezone

from drivers.models import DriverProfile

logger = logging.getLogger(__name__)


class DriverBannedError(Exception):
    pass


def update_driver_status(profile: DriverProfile, new_status: str) -> DriverProfile:
    """
    Toggle driver eligibility for dispatch.

    Banned drivers cannot reinstate themselves.
    """
    if profile.status == DriverProfile.STATUS_BANNED:
        raise DriverBannedError("Driver account is banned")

    profile.status = new_status
    profile.save(update_fields=["status"])
    logger.info("Driver %s status set to %s", profile.user_id, new_status)
    return profile


def update_driver_location(profile: DriverProfile, lat, lon) -> DriverProfile:
    """
    Record the driver's last-reported position, used by:
    - HTTP location endpoint
    - WebSocket update-location messages
    """
    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    logger.debug("Driver %s location updated to (%s, %s)", profile.user_id, lat, lon)
    return profile


def relay_location_to_rider(driver_id, lat, lon, registry=None) -> bool:
    """
    Push the driver's position to the rider of their current trip.

    Returns False when the driver has no accepted or in-progress ride, or the
    rider is offline.
    """
    from rides.models import Ride
    from realtime import notifications

    ride = (
        Ride.objects.filter(driver_id=driver_id, status__in=[Ride.STATUS_ACCEPTED, Ride.STATUS_IN_PROGRESS])
        .order_by("-accepted_at")
        .first()
    )
    if ride is None:
        return False

    return notifications.notify_rider(notifications.DRIVER_LOCATION, ride, {
        "ride_id": ride.id,
        "driver_id": driver_id,
        "latitude": float(lat),
        "longitude": float(lon),
    }, registry=registry)
