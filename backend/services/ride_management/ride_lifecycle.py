"""
Core ride lifecycle operations.

State machine:

    pending -> accepted -> in-progress -> completed
    pending | accepted -> cancelled

Every transition is a conditional UPDATE on the current status
(compare-and-set), so two concurrent callers can never both win the same
transition. Rider notifications are pushed after the transaction commits.
"""

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Optional, Dict, Any, Iterable

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from rides.models import Ride
from rides.serializers import DriverSnippetSerializer, RiderRideSerializer
from drivers.models import DriverProfile
from realtime import notifications
from realtime.registry import ConnectionRegistry
from services.maps import GoogleMapsService, MapsServiceError, get_maps_service
from services.pricing import calculate_fare, resolve_vehicle_type
from .exceptions import (
    ValidationError,
    RideNotFoundError,
    ForbiddenError,
    ConflictError,
    InvalidOTPError,
)

logger = logging.getLogger(__name__)

OTP_LENGTH = 4


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


@dataclass
class FareQuote:
    fare: Decimal
    vehicle_type: str
    distance_km: float
    duration_min: int
    distance_text: str
    duration_text: str


def generate_otp() -> str:
    """Random 4-digit passcode (1000-9999)."""
    return str(1000 + secrets.randbelow(9000))


# ===================== Pricing =====================

def get_fare_quote(
    pickup,
    dropoff,
    vehicle_type: Optional[str] = None,
    maps_service: Optional[GoogleMapsService] = None,
) -> FareQuote:
    """
    Price a trip from the provider's distance/duration.

    Raises:
        ValidationError: missing pickup or dropoff
        ProviderUnavailable, RouteNotFound, ProviderError: routing failed
    """
    if not pickup or not dropoff:
        raise ValidationError("Both pickup and dropoff locations are required.")

    maps_service = maps_service or get_maps_service()
    estimate = maps_service.get_distance_time(pickup, dropoff)
    rate_key = resolve_vehicle_type(vehicle_type)

    return FareQuote(
        fare=calculate_fare(estimate.distance_km, estimate.duration_min, rate_key),
        vehicle_type=rate_key,
        distance_km=estimate.distance_km,
        duration_min=estimate.duration_min,
        distance_text=estimate.distance_text,
        duration_text=estimate.duration_text,
    )


def _quote_or_zero(pickup, dropoff, vehicle_type, maps_service) -> Decimal:
    try:
        return get_fare_quote(pickup, dropoff, vehicle_type, maps_service=maps_service).fare
    except (MapsServiceError, ValueError) as e:
        logger.warning("Fare computation failed for %r -> %r, using 0: %s", pickup, dropoff, e)
        return Decimal("0.00")


def _coerce_amount(value, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    try:
        return amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")


# ===================== Helpers =====================

def _get_ride(ride_id, with_otp: bool = False) -> Ride:
    queryset = Ride.objects.with_otp() if with_otp else Ride.objects.all()
    ride = queryset.select_related("passenger").filter(pk=ride_id).first()
    if ride is None:
        raise RideNotFoundError("Ride not found")
    return ride


def _current_status(ride_id) -> Optional[str]:
    return Ride.objects.filter(pk=ride_id).values_list("status", flat=True).first()


def _compare_and_set(ride_id, expected: Iterable[str], assigned_driver=None, **changes) -> bool:
    """Apply ``changes`` only if the ride is still in one of the ``expected`` statuses."""
    queryset = Ride.objects.filter(pk=ride_id, status__in=list(expected))
    if assigned_driver is not None:
        queryset = queryset.filter(driver=assigned_driver)
    return queryset.update(**changes) == 1


def _require_assigned_driver(ride: Ride, driver) -> None:
    if ride.driver_id is None or ride.driver_id != driver.id:
        raise ForbiddenError("You are not assigned to this ride")


def _notify_after_commit(event: str, ride: Ride, payload: Dict[str, Any], registry=None) -> None:
    transaction.on_commit(partial(notifications.notify_rider, event, ride, payload, registry=registry))


# ===================== Rider Operations =====================

def create_ride(
    passenger,
    pickup: str,
    dropoff: str,
    vehicle_type: str,
    payment_method: str = Ride.PAYMENT_CASH,
    fare=None,
    pickup_latitude=None,
    pickup_longitude=None,
    maps_service: Optional[GoogleMapsService] = None,
) -> RideResult:
    """
    Create a new pending ride and queue its dispatch to nearby drivers.

    Args:
        passenger: User model instance (rider)
        pickup: Pickup location text
        dropoff: Dropoff location text
        vehicle_type: Requested vehicle class
        payment_method: cash or electronic
        fare: Previously quoted fare; kept as-is when given
        pickup_latitude: Optional pickup latitude
        pickup_longitude: Optional pickup longitude
        maps_service: Maps adapter used when the fare must be computed here

    Returns:
        RideResult with the created ride (passcode included for the rider)

    Raises:
        ValidationError: If required fields are missing or malformed
    """
    pickup = (pickup or "").strip()
    dropoff = (dropoff or "").strip()
    vehicle_type = (vehicle_type or "").strip().lower()

    if not pickup or not dropoff:
        raise ValidationError("Pickup and dropoff locations are required.")
    if not vehicle_type:
        raise ValidationError("Vehicle type is required.")
    if payment_method not in dict(Ride.PAYMENT_CHOICES):
        raise ValidationError(f"Unsupported payment method: {payment_method}")

    # Priced outside the transaction; the provider call can be slow
    ride_fare = _coerce_amount(fare, "fare")
    if ride_fare is None:
        ride_fare = _quote_or_zero(pickup, dropoff, vehicle_type, maps_service)

    from services.matching import submit_ride_dispatch
    with transaction.atomic():
        ride = Ride.objects.create(
            passenger=passenger,
            pickup_address=pickup,
            dropoff_address=dropoff,
            pickup_latitude=pickup_latitude,
            pickup_longitude=pickup_longitude,
            vehicle_type=vehicle_type,
            fare=ride_fare,
            payment_method=payment_method,
            status=Ride.STATUS_PENDING,
            otp=generate_otp(),
        )

        logger.info("Ride %s created for rider %s (fare=%s)", ride.id, passenger.id, ride.fare)

        transaction.on_commit(partial(
            submit_ride_dispatch,
            ride.id,
            pickup,
            dropoff,
            vehicle_type=vehicle_type,
            payment_method=payment_method,
        ))

    return RideResult(
        success=True,
        ride=ride,
        message="Ride request sent to nearby drivers",
    )


@transaction.atomic
def cancel_ride(passenger, ride_id: int, reason: str = "", registry: Optional[ConnectionRegistry] = None) -> RideResult:
    """
    Cancel one of the rider's own rides while it is pending or accepted.

    Raises:
        RideNotFoundError: If the ride does not exist or is not the rider's
        ConflictError: If the ride has already started or finished
    """
    ride = Ride.objects.filter(pk=ride_id, passenger=passenger).first()
    if ride is None:
        raise RideNotFoundError("Ride not found")

    cancelled = _compare_and_set(
        ride.id,
        [Ride.STATUS_PENDING, Ride.STATUS_ACCEPTED],
        status=Ride.STATUS_CANCELLED,
        cancelled_at=timezone.now(),
        cancellation_reason=reason or "No reason provided",
    )
    if not cancelled:
        status = _current_status(ride.id)
        raise ConflictError(f"Cannot cancel - ride is already {status}", current_status=status)

    ride.refresh_from_db()
    logger.info("Ride %s cancelled by rider %s", ride.id, passenger.id)

    if ride.driver_id:
        transaction.on_commit(partial(
            notifications.notify_driver,
            notifications.RIDE_CANCELLED,
            ride.driver_id,
            {"ride_id": ride.id, "message": "Rider cancelled this ride."},
            registry=registry,
        ))

    return RideResult(
        success=True,
        ride=ride,
        message="Ride cancelled successfully",
        extra={"was_assigned": ride.driver_id is not None},
    )


# ===================== Driver Operations =====================

@transaction.atomic
def accept_ride(driver, ride_id: int, registry: Optional[ConnectionRegistry] = None) -> RideResult:
    """
    Claim a pending ride for this driver.

    Only one driver can win: the assignment is conditioned on the ride still
    being pending.

    Raises:
        ForbiddenError: If the caller has no usable driver profile
        RideNotFoundError: If the ride does not exist
        ConflictError: If the ride is no longer pending
    """
    profile = DriverProfile.objects.filter(user_id=driver.id).first()
    if profile is None or profile.status == DriverProfile.STATUS_BANNED:
        raise ForbiddenError("Driver is not allowed to accept rides")

    accepted = _compare_and_set(
        ride_id,
        [Ride.STATUS_PENDING],
        driver=driver,
        status=Ride.STATUS_ACCEPTED,
        accepted_at=timezone.now(),
    )
    if not accepted:
        status = _current_status(ride_id)
        if status is None:
            raise RideNotFoundError("Ride not found")
        raise ConflictError(
            f"Ride is not available for acceptance. Current status: {status}",
            current_status=status,
        )

    ride = _get_ride(ride_id, with_otp=True)
    logger.info("Ride %s accepted by driver %s", ride.id, driver.id)

    _notify_after_commit(notifications.RIDE_ACCEPTED, ride, {
        "ride_id": ride.id,
        "otp": ride.otp,
        "driver": DriverSnippetSerializer(driver).data,
        "ride": RiderRideSerializer(ride).data,
        "message": "Driver found! Your ride has been accepted.",
    }, registry=registry)

    return RideResult(
        success=True,
        ride=ride,
        message="Ride accepted successfully",
    )


@transaction.atomic
def start_ride(driver, ride_id: int, otp: str, registry: Optional[ConnectionRegistry] = None) -> RideResult:
    """
    Start an accepted ride after the rider's passcode is confirmed.

    Raises:
        RideNotFoundError: If the ride does not exist
        ForbiddenError: If the caller is not the assigned driver
        ConflictError: If the ride is not in accepted status
        InvalidOTPError: If the passcode does not match exactly
    """
    ride = _get_ride(ride_id, with_otp=True)
    _require_assigned_driver(ride, driver)

    if ride.status != Ride.STATUS_ACCEPTED:
        raise ConflictError(
            f"Ride is not in accepted status. Current status: {ride.status}",
            current_status=ride.status,
        )

    if not isinstance(otp, str) or ride.otp != otp:
        raise InvalidOTPError("Invalid OTP. Please check with passenger.")

    started = _compare_and_set(
        ride.id,
        [Ride.STATUS_ACCEPTED],
        assigned_driver=driver,
        status=Ride.STATUS_IN_PROGRESS,
        started_at=timezone.now(),
    )
    if not started:
        status = _current_status(ride.id)
        raise ConflictError(f"Ride changed while starting. Current status: {status}", current_status=status)

    ride.refresh_from_db()
    logger.info("Ride %s started by driver %s", ride.id, driver.id)

    _notify_after_commit(notifications.RIDE_STARTED, ride, {
        "ride_id": ride.id,
        "message": "Your ride has started.",
    }, registry=registry)

    return RideResult(
        success=True,
        ride=ride,
        message="Ride started successfully",
    )


@transaction.atomic
def complete_ride(
    driver,
    ride_id: int,
    fare=None,
    distance_km=None,
    duration_min=None,
    registry: Optional[ConnectionRegistry] = None,
) -> RideResult:
    """
    Complete a ride - called by the assigned driver at the destination.

    Args:
        driver: User model instance (driver)
        ride_id: ID of the ride to complete
        fare: Operator override of the final fare (ride fare kept otherwise)
        distance_km: Actual trip distance
        duration_min: Actual trip duration

    Returns:
        RideResult with the completed ride; ``extra`` holds the driver's
        updated totals

    Raises:
        RideNotFoundError, ForbiddenError, ConflictError, ValidationError
    """
    ride = _get_ride(ride_id)
    _require_assigned_driver(ride, driver)

    if ride.status not in (Ride.STATUS_ACCEPTED, Ride.STATUS_IN_PROGRESS):
        raise ConflictError(
            f"Ride cannot be completed. Current status: {ride.status}",
            current_status=ride.status,
        )

    final_fare = _coerce_amount(fare, "fare")
    if final_fare is None:
        final_fare = ride.fare
    distance = _coerce_amount(distance_km, "distance")
    if distance is None:
        distance = ride.distance_km
    duration = ride.duration_min
    if duration_min is not None:
        duration_amount = _coerce_amount(duration_min, "duration")
        duration = int(duration_amount)

    completed = _compare_and_set(
        ride.id,
        [Ride.STATUS_ACCEPTED, Ride.STATUS_IN_PROGRESS],
        assigned_driver=driver,
        status=Ride.STATUS_COMPLETED,
        completed_at=timezone.now(),
        fare=final_fare,
        distance_km=distance,
        duration_min=duration,
    )
    if not completed:
        status = _current_status(ride.id)
        raise ConflictError(f"Ride changed while completing. Current status: {status}", current_status=status)

    # Atomic increments; concurrent completions never lose an update
    updated = DriverProfile.objects.filter(user_id=driver.id).update(
        total_rides=F("total_rides") + 1,
        total_earnings=F("total_earnings") + final_fare,
        total_distance=F("total_distance") + (distance or Decimal("0")),
    )
    if not updated:
        logger.warning("Driver %s has no profile; totals not updated for ride %s", driver.id, ride.id)

    ride.refresh_from_db()
    totals = (
        DriverProfile.objects.filter(user_id=driver.id)
        .values("total_rides", "total_earnings", "total_distance")
        .first()
    )
    logger.info("Ride %s completed by driver %s (fare=%s)", ride.id, driver.id, ride.fare)

    _notify_after_commit(notifications.RIDE_COMPLETED, ride, {
        "ride_id": ride.id,
        "payment_method": ride.payment_method,
        "amount": float(ride.fare),
        "message": "Your ride has been completed",
    }, registry=registry)

    return RideResult(
        success=True,
        ride=ride,
        message="Ride completed successfully",
        extra={"driver_totals": totals},
    )
