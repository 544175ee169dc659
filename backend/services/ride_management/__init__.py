"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Quoting fares
    - Creating ride requests
    - Accepting, starting and completing rides
    - Cancelling rides
"""

from .ride_lifecycle import (
    RideResult,
    FareQuote,
    generate_otp,
    get_fare_quote,
    create_ride,
    cancel_ride,
    accept_ride,
    start_ride,
    complete_ride,
)

from .exceptions import (
    RideServiceError,
    ValidationError,
    RideNotFoundError,
    ForbiddenError,
    ConflictError,
    InvalidOTPError,
)

__all__ = [
    # Lifecycle operations
    "RideResult",
    "FareQuote",
    "generate_otp",
    "get_fare_quote",
    "create_ride",
    "cancel_ride",
    "accept_ride",
    "start_ride",
    "complete_ride",
    # Exceptions
    "RideServiceError",
    "ValidationError",
    "RideNotFoundError",
    "ForbiddenError",
    "ConflictError",
    "InvalidOTPError",
]
