"""
Core ride lifecycle operations.

    OPEN -> ACCEPTED -> IN_ROUTE -> COMPLETED
    OPEN | ACCEPTED -> CANCELLED

This module contains all the business logic for moving a ride through its
states, extracted from the views layer for better testability and reuse.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from accounts.identity import Identity
from accounts.models import Role
from chat.models import Conversation
from common.utils.geo import distance_miles, is_valid_coordinate
from rides.models import Booking, BookingStatus, PaymentType, Ride, RideStatus
from services.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from services.membership import require_membership
from services.pricing import (
    base_fare_cents,
    compute_fare,
    contract_fare,
    default_discount_bps,
    normalize_payment_type,
)

logger = logging.getLogger(__name__)

MAX_DISCOUNT_BPS = 10000


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    booking: Optional[Booking] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Location:
    address: str
    lat: float
    lng: float


# ===================== Validation =====================

def validate_distance(value, field: str = "distanceMiles") -> float:
    """A finite, strictly positive number of miles."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        miles = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(miles) or miles <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return miles


def validate_passenger_count(value) -> int:
    max_passengers = int(getattr(settings, "RIDE_MAX_PASSENGERS", 6))
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("passengerCount must be a whole number")
    if value < 1 or value > max_passengers:
        raise ValidationError(f"passengerCount must be between 1 and {max_passengers}")
    return value


def parse_departure_time(value) -> datetime:
    if isinstance(value, datetime):
        departure = value
    else:
        try:
            departure = parse_datetime(str(value or "").strip())
        except ValueError:
            departure = None
        if departure is None:
            raise ValidationError("Invalid departureTime")

    if timezone.is_naive(departure):
        departure = timezone.make_aware(departure)
    return departure


def validate_location(location: Location, label: str) -> Location:
    address = (location.address or "").strip()
    if not address:
        raise ValidationError(f"{label} address is required")
    if not is_valid_coordinate(location.lat, location.lng):
        raise ValidationError(f"Invalid {label} coordinates")
    return Location(address=address, lat=float(location.lat), lng=float(location.lng))


def validate_discount_bps(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("cashDiscountBps must be a whole number")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 0 or value > MAX_DISCOUNT_BPS:
        raise ValidationError(f"cashDiscountBps must be between 0 and {MAX_DISCOUNT_BPS}")
    return value


def resolve_payment_terms(payment_type, cash_discount_bps, pending: Optional[Booking] = None):
    """
    Pick the payment type and discount for a booking.

    Explicit values win, then the rider's pending booking, then the defaults.
    Card payments never carry a discount rate.
    """
    if payment_type in (None, ""):
        payment_type = pending.payment_type if pending else PaymentType.CARD
    payment_type = normalize_payment_type(payment_type)

    if cash_discount_bps is None:
        if pending is not None and pending.payment_type == payment_type:
            cash_discount_bps = pending.cash_discount_bps
        else:
            cash_discount_bps = default_discount_bps(payment_type)

    cash_discount_bps = validate_discount_bps(cash_discount_bps)
    if payment_type == PaymentType.CARD:
        cash_discount_bps = 0
    return payment_type, cash_discount_bps


# ===================== Helpers =====================

def get_ride(ride_id, for_update: bool = False) -> Ride:
    qs = Ride.objects.all()
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=ride_id)
    except (Ride.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Ride not found.")


def _require_ride_driver(ride: Ride, identity: Identity):
    if ride.driver_id != identity.account_id:
        raise ForbiddenError("Only the ride's driver can do this.")


def settle_total_cents(ride: Ride, booking: Optional[Booking], measured_fare_cents: Optional[int]) -> int:
    """
    Settlement precedence at completion.

    The accepted booking's snapshot is the contract price. Measured values are
    only a backstop when no snapshot exists.
    """
    snapshot = contract_fare(booking)
    if snapshot is not None:
        return snapshot.final_amount_cents

    if measured_fare_cents is not None:
        return measured_fare_cents

    if ride.total_price_cents is not None:
        return ride.total_price_cents

    miles = ride.distance_miles
    if not miles or miles <= 0:
        miles = distance_miles(ride.origin_lat, ride.origin_lng, ride.destination_lat, ride.destination_lng)
    return base_fare_cents(miles)


def _optional_measured_fare(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("fareCents must be a non-negative whole number of cents")
    return value


def _after_commit(func, *args, **kwargs):
    transaction.on_commit(lambda: func(*args, **kwargs))


def _notify(event_type: str, ride: Ride, message: str):
    from realtime.notifications import notify_ride_group
    notify_ride_group(event_type, ride, message)


# ===================== Driver Operations =====================

@transaction.atomic
def post_ride(
    identity: Identity,
    origin: Location,
    destination: Location,
    distance_miles_value,
    departure_time,
    passenger_count=1,
) -> RideResult:
    """
    Post a new ride offer.

    Args:
        identity: Acting driver
        origin: Pickup address and coordinates
        destination: Dropoff address and coordinates
        distance_miles_value: Trip distance in miles (> 0)
        departure_time: Scheduled departure (datetime or ISO-8601 string)
        passenger_count: Seats offered (1..RIDE_MAX_PASSENGERS)

    Returns:
        RideResult with the OPEN ride

    Raises:
        ForbiddenError: If the account is not a driver or fails the membership gate
        ValidationError: On malformed input
    """
    identity.require_role(Role.DRIVER, message="Only drivers can post rides.")

    origin = validate_location(origin, "origin")
    destination = validate_location(destination, "destination")
    miles = validate_distance(distance_miles_value)
    departure = parse_departure_time(departure_time)
    seats = validate_passenger_count(passenger_count)

    require_membership(identity, "post_ride")

    ride = Ride.objects.create(
        driver_id=identity.account_id,
        origin_address=origin.address,
        origin_lat=origin.lat,
        origin_lng=origin.lng,
        destination_address=destination.address,
        destination_lat=destination.lat,
        destination_lng=destination.lng,
        distance_miles=miles,
        departure_time=departure,
        passenger_count=seats,
        status=RideStatus.OPEN,
    )

    logger.info("Ride %s posted by driver %s (%.2f mi)", ride.id, identity.account_id, miles)

    return RideResult(success=True, ride=ride, message="Ride posted.")


@transaction.atomic
def start_trip(identity: Identity, ride_id) -> RideResult:
    """
    Driver picks the rider up: ACCEPTED -> IN_ROUTE.

    ``trip_started_at`` is only written the first time.

    Raises:
        InvalidStateError: If the ride is not ACCEPTED or the driver already has a trip in progress
    """
    identity.require_role(Role.DRIVER, message="Only drivers can start a ride.")
    require_membership(identity, "start_trip")

    ride = get_ride(ride_id, for_update=True)
    _require_ride_driver(ride, identity)

    if ride.status != RideStatus.ACCEPTED:
        raise InvalidStateError(
            f"Ride must be in ACCEPTED status to start. Current status: {ride.status}"
        )

    other_active = Ride.objects.filter(
        driver_id=identity.account_id,
        status=RideStatus.IN_ROUTE,
    ).exclude(pk=ride.pk).exists()
    if other_active:
        raise InvalidStateError(
            "You already have a ride in progress. Complete it before starting a new one."
        )

    ride.status = RideStatus.IN_ROUTE
    if ride.trip_started_at is None:
        ride.trip_started_at = timezone.now()
    ride.save(update_fields=['status', 'trip_started_at'])

    logger.info("Ride %s started by driver %s", ride.id, identity.account_id)
    _after_commit(_notify, 'ride_started', ride, 'Your driver has started the trip.')

    return RideResult(success=True, ride=ride, message="Trip started.")


@transaction.atomic
def complete_trip(
    identity: Identity,
    ride_id,
    measured_distance_miles=None,
    measured_fare_cents=None,
) -> RideResult:
    """
    Complete a ride - called by driver when the rider reaches the destination.

    Args:
        identity: Acting driver
        ride_id: ID of the ride to complete
        measured_distance_miles: Distance measured by the trip meter, if any
        measured_fare_cents: Fare measured by the trip meter, if any

    Returns:
        RideResult with the COMPLETED ride and its booking

    Raises:
        InvalidStateError: If the ride is not IN_ROUTE
    """
    identity.require_role(Role.DRIVER, message="Only drivers can complete rides.")
    require_membership(identity, "complete_trip")

    measured_miles = None
    if measured_distance_miles is not None:
        measured_miles = validate_distance(measured_distance_miles)
    measured_fare = _optional_measured_fare(measured_fare_cents)

    ride = get_ride(ride_id, for_update=True)
    _require_ride_driver(ride, identity)

    if ride.status != RideStatus.IN_ROUTE:
        raise InvalidStateError(
            f"Ride must be IN_ROUTE to complete (current: {ride.status})."
        )

    booking = (
        Booking.objects.select_for_update()
        .select_related('rider')
        .filter(ride=ride, status=BookingStatus.ACCEPTED)
        .first()
    )

    now = timezone.now()
    if measured_miles is not None:
        ride.distance_miles = measured_miles
    ride.total_price_cents = settle_total_cents(ride, booking, measured_fare)
    if ride.trip_started_at is None:
        ride.trip_started_at = now
    if ride.trip_completed_at is None:
        ride.trip_completed_at = now
    ride.status = RideStatus.COMPLETED
    ride.save(update_fields=[
        'status', 'distance_miles', 'total_price_cents', 'trip_started_at', 'trip_completed_at',
    ])

    participant_ids = [ride.driver_id]
    if booking is not None:
        booking.status = BookingStatus.COMPLETED
        booking.completed_at = now
        booking.save(update_fields=['status', 'completed_at'])
        participant_ids.append(booking.rider_id)

    get_user_model().objects.filter(pk__in=participant_ids).update(
        completed_rides=F('completed_rides') + 1
    )

    logger.info(
        "Ride %s completed by driver %s, settled at %s cents",
        ride.id, identity.account_id, ride.total_price_cents,
    )

    _after_commit(_notify, 'ride_completed', ride, 'Your ride has been completed. Thank you for riding with us!')
    if booking is not None and booking.rider.email:
        from rides.notifications import dispatch_receipt_email
        _after_commit(dispatch_receipt_email, ride.id, [booking.rider.email])

    return RideResult(success=True, ride=ride, booking=booking, message="Ride completed successfully")


# ===================== Rider Operations =====================

def _raise_not_acceptable(ride_id):
    ride = Ride.objects.get(pk=ride_id)
    already_taken = (
        ride.status == RideStatus.ACCEPTED
        or ride.bookings.filter(status=BookingStatus.ACCEPTED).exists()
    )
    if already_taken:
        raise ConflictError("This ride has already been accepted.")
    raise InvalidStateError(f"This ride is no longer available to accept (status: {ride.status}).")


@transaction.atomic
def accept_ride(identity: Identity, ride_id, payment_type=None, cash_discount_bps=None) -> RideResult:
    """
    Claim an OPEN ride: OPEN -> ACCEPTED, booking -> ACCEPTED with a frozen fare.

    The claim is one conditional UPDATE (OPEN and no ACCEPTED booking), so of two
    concurrent callers exactly one updates the row and the other gets
    ``ConflictError``. The partial unique index on accepted bookings backs this
    up at the database level.

    Args:
        identity: Acting rider
        ride_id: ID of the ride to accept
        payment_type: CARD or CASH (defaults to the rider's pending booking, then CARD)
        cash_discount_bps: Cash discount rate (defaults to the pending booking, then settings)

    Returns:
        RideResult with the accepted ride and booking

    Raises:
        ConflictError: If another acceptance already won
        ForbiddenError: If the account is not a rider, owns the ride, or fails the gate
        InvalidStateError: If the ride was cancelled or already finished
    """
    identity.require_role(Role.RIDER, message="Only riders can book rides.")
    require_membership(identity, "accept_ride")

    ride = get_ride(ride_id)
    if ride.driver_id == identity.account_id:
        raise ForbiddenError("You cannot book your own ride.")

    pending = (
        Booking.objects.select_for_update()
        .filter(ride=ride, rider_id=identity.account_id, status=BookingStatus.PENDING)
        .order_by('created_at')
        .first()
    )

    payment_type, cash_discount_bps = resolve_payment_terms(payment_type, cash_discount_bps, pending)
    fare = compute_fare(base_fare_cents(ride.distance_miles), payment_type, cash_discount_bps)
    now = timezone.now()

    claimed = Ride.objects.available().filter(pk=ride.pk).update(
        status=RideStatus.ACCEPTED,
        accepted_at=now,
    )
    if claimed == 0:
        _raise_not_acceptable(ride.pk)

    snapshot = dict(
        status=BookingStatus.ACCEPTED,
        payment_type=payment_type,
        cash_discount_bps=cash_discount_bps,
        base_amount_cents=fare.base_amount_cents,
        discount_cents=fare.discount_cents,
        final_amount_cents=fare.final_amount_cents,
        currency=getattr(settings, "FARE_CURRENCY", "usd"),
        accepted_at=now,
    )

    try:
        with transaction.atomic():
            if pending is not None:
                for field, value in snapshot.items():
                    setattr(pending, field, value)
                pending.save(update_fields=list(snapshot.keys()))
                booking = pending
            else:
                booking = Booking.objects.create(
                    ride=ride,
                    rider_id=identity.account_id,
                    **snapshot,
                )
    except IntegrityError:
        raise ConflictError("This ride has already been accepted.")

    # Everyone else waiting on this ride lost it
    Booking.objects.filter(ride=ride, status=BookingStatus.PENDING).exclude(pk=booking.pk).update(
        status=BookingStatus.EXPIRED
    )

    conversation, _ = Conversation.objects.get_or_create(
        ride=ride,
        driver_id=ride.driver_id,
        rider_id=identity.account_id,
        defaults={'booking': booking},
    )

    ride.refresh_from_db()

    logger.info(
        "Ride %s accepted by rider %s (booking %s, %s, %s cents)",
        ride.id, identity.account_id, booking.id, payment_type, fare.final_amount_cents,
    )

    _after_commit(_notify, 'ride_accepted', ride, 'Your ride has been booked.')

    return RideResult(
        success=True,
        ride=ride,
        booking=booking,
        message="Ride accepted.",
        extra={"conversation_id": conversation.id},
    )


# ===================== Shared Operations =====================

@transaction.atomic
def cancel_ride(identity: Identity, ride_id, reason: str = "") -> RideResult:
    """
    Cancel a ride that has not started yet: OPEN | ACCEPTED -> CANCELLED.

    Allowed for the ride's driver, the rider holding the accepted booking, and
    admins. Every PENDING or ACCEPTED booking on the ride is cancelled with it.

    Raises:
        ForbiddenError: If the account is not a party to the ride
        InvalidStateError: If the ride is already in route, completed or cancelled
    """
    ride = get_ride(ride_id, for_update=True)

    accepted = ride.bookings.filter(status=BookingStatus.ACCEPTED).first()
    is_driver = ride.driver_id == identity.account_id
    is_rider = accepted is not None and accepted.rider_id == identity.account_id
    if not (is_driver or is_rider or identity.is_admin):
        raise ForbiddenError("You are not allowed to cancel this ride.")

    if ride.status not in (RideStatus.OPEN, RideStatus.ACCEPTED):
        raise InvalidStateError(f"Cannot cancel - ride is already {ride.status}")

    now = timezone.now()
    ride.status = RideStatus.CANCELLED
    ride.cancelled_at = now
    ride.cancellation_reason = reason or ("Cancelled by driver" if is_driver else "Cancelled by rider")
    ride.save(update_fields=['status', 'cancelled_at', 'cancellation_reason'])

    cancelled_bookings = Booking.objects.filter(
        ride=ride,
        status__in=[BookingStatus.PENDING, BookingStatus.ACCEPTED],
    ).update(status=BookingStatus.CANCELLED, cancelled_at=now)

    logger.info(
        "Ride %s cancelled by account %s (%s booking(s) cancelled)",
        ride.id, identity.account_id, cancelled_bookings,
    )

    _after_commit(_notify, 'ride_cancelled', ride, ride.cancellation_reason)

    return RideResult(
        success=True,
        ride=ride,
        message="Ride cancelled successfully",
        extra={"cancelled_bookings": cancelled_bookings, "was_accepted": accepted is not None},
    )
