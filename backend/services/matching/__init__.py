"""
Driver matching and offer dispatch service.

This module handles:
    - Finding eligible drivers around a pickup point
    - Fanning a ride offer out to connected drivers
    - Running the fan-out in the background
"""

from .locality import DriverCandidate, find_drivers_in_radius
from .offer_dispatch import offer_ride
from .dispatcher import submit_ride_dispatch

__all__ = [
    "DriverCandidate",
    "find_drivers_in_radius",
    "offer_ride",
    "submit_ride_dispatch",
]
