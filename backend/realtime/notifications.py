"""
Notification helpers for pushing ride events to connected riders and drivers.

All helpers are best effort: an offline recipient or a failed send is logged
and reported as False, never raised into the ride lifecycle.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .registry import ConnectionRegistry, get_connection_registry, send_to_connection

logger = logging.getLogger(__name__)

# Event names pushed to clients
RIDE_REQUEST = "ride-request"
RIDE_ACCEPTED = "ride-accepted"
RIDE_STARTED = "ride-started"
RIDE_COMPLETED = "ride-completed"
RIDE_CANCELLED = "ride-cancelled"
DRIVER_LOCATION = "driver-location"


def notify_account(
    account_id: Optional[int],
    event: str,
    payload: Dict[str, Any],
    registry: Optional[ConnectionRegistry] = None,
) -> bool:
    """Push an event to an account's live connection, if it has one."""
    if registry is None:
        registry = get_connection_registry()
    handle = registry.get(account_id)
    if handle is None:
        logger.debug("Account %s is offline, skipping %s", account_id, event)
        return False
    return send_to_connection(handle, event, payload)


def notify_rider(
    event: str,
    ride,
    payload: Dict[str, Any],
    registry: Optional[ConnectionRegistry] = None,
) -> bool:
    """
    Send a ride lifecycle event to the ride's rider.

    Args:
        event: Event name (ride-accepted, ride-completed, ...)
        ride: Ride model instance
        payload: Event body
        registry: Connection registry (process registry by default)

    Returns:
        True if the push was handed to the channel layer, False if the rider
        is offline or the send failed
    """
    return notify_account(ride.passenger_id, event, payload, registry=registry)


def notify_driver(
    event: str,
    driver_id: Optional[int],
    payload: Dict[str, Any],
    registry: Optional[ConnectionRegistry] = None,
) -> bool:
    """Send an event to one driver."""
    if not driver_id:
        return False
    return notify_account(driver_id, event, payload, registry=registry)
