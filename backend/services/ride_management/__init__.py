"""
Ride management service - Core ride and booking lifecycle operations.

This module handles:
    - Posting rides
    - Requesting, accepting and cancelling bookings
    - Starting and completing trips
    - Cancelling rides
    - Querying rides for the portal, history and receipts
"""

from .ride_lifecycle import (
    Location,
    RideResult,
    accept_ride,
    cancel_ride,
    complete_trip,
    post_ride,
    settle_total_cents,
    start_trip,
)

from .booking_lifecycle import (
    available_rides,
    cancel_booking,
    expire_pending_bookings,
    request_booking,
)

from .ride_queries import (
    driver_portal,
    receipt_booking,
    ride_for_receipt,
    rider_rides,
)

__all__ = [
    # Lifecycle operations
    "Location",
    "RideResult",
    "accept_ride",
    "cancel_ride",
    "complete_trip",
    "post_ride",
    "settle_total_cents",
    "start_trip",
    # Bookings
    "available_rides",
    "cancel_booking",
    "expire_pending_bookings",
    "request_booking",
    # Queries
    "driver_portal",
    "receipt_booking",
    "ride_for_receipt",
    "rider_rides",
]
