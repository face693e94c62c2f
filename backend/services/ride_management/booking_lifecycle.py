"""
Booking lifecycle operations.

    PENDING -> ACCEPTED -> COMPLETED
    PENDING -> CANCELLED | EXPIRED

Acceptance itself lives in ``ride_lifecycle.accept_ride`` because it moves the
ride and the booking together.
"""

import logging
from datetime import datetime, timedelta
from typing import List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.identity import Identity
from accounts.models import Role
from common.retry import retry_on_transient
from rides.models import Booking, BookingStatus, Ride, RideStatus
from services.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from services.membership import require_membership

from .ride_lifecycle import RideResult, resolve_payment_terms

logger = logging.getLogger(__name__)


@retry_on_transient
def available_rides() -> List[Ride]:
    """
    OPEN rides nobody has accepted yet, soonest departure first.

    Evaluated here so a transient failure is retried before it reaches the caller.
    """
    return list(
        Ride.objects.available()
        .select_related('driver')
        .prefetch_related('bookings')
        .order_by('departure_time', 'id')
    )


@transaction.atomic
def request_booking(identity: Identity, ride_id, payment_type, cash_discount_bps=None) -> RideResult:
    """
    Create (or update) the rider's PENDING booking on an available ride.

    A rider holds at most one pending booking per ride; asking again just
    updates its payment terms.

    Raises:
        NotFoundError: If the ride does not exist
        InvalidStateError: If the ride is no longer available
        ForbiddenError: If the rider posted the ride or fails the membership gate
    """
    identity.require_role(Role.RIDER, message="Only riders can book rides.")
    require_membership(identity, "request_booking")

    try:
        ride = Ride.objects.select_for_update().get(pk=ride_id)
    except (Ride.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Ride not found.")

    if ride.driver_id == identity.account_id:
        raise ForbiddenError("You cannot book your own ride.")

    if not Ride.objects.available().filter(pk=ride.pk).exists():
        raise InvalidStateError("This ride is no longer available.")

    pending = (
        Booking.objects.select_for_update()
        .filter(ride=ride, rider_id=identity.account_id, status=BookingStatus.PENDING)
        .order_by('created_at')
        .first()
    )

    payment_type, cash_discount_bps = resolve_payment_terms(payment_type, cash_discount_bps)

    if pending is not None:
        pending.payment_type = payment_type
        pending.cash_discount_bps = cash_discount_bps
        pending.save(update_fields=['payment_type', 'cash_discount_bps'])
        booking = pending
        message = "Booking updated."
    else:
        booking = Booking.objects.create(
            ride=ride,
            rider_id=identity.account_id,
            status=BookingStatus.PENDING,
            payment_type=payment_type,
            cash_discount_bps=cash_discount_bps,
            currency=getattr(settings, "FARE_CURRENCY", "usd"),
        )
        message = "Booking requested."

    logger.info(
        "Rider %s requested ride %s (booking %s, %s)",
        identity.account_id, ride.id, booking.id, payment_type,
    )

    return RideResult(success=True, ride=ride, booking=booking, message=message)


@transaction.atomic
def cancel_booking(identity: Identity, booking_id) -> RideResult:
    """
    Withdraw a PENDING booking. Cancelling an already cancelled booking is a no-op.

    Accepted bookings are cancelled together with their ride (``cancel_ride``).
    """
    try:
        booking = Booking.objects.select_for_update().select_related('ride').get(pk=booking_id)
    except (Booking.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Booking not found.")

    if booking.rider_id != identity.account_id and not identity.is_admin:
        raise ForbiddenError("You can only cancel your own bookings.")

    if booking.status == BookingStatus.CANCELLED:
        return RideResult(success=True, ride=booking.ride, booking=booking, message="Booking already cancelled.")

    if booking.status != BookingStatus.PENDING:
        raise InvalidStateError(
            f"Only pending bookings can be cancelled (current: {booking.status}). "
            "Cancel the ride to withdraw an accepted booking."
        )

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = timezone.now()
    booking.save(update_fields=['status', 'cancelled_at'])

    logger.info("Booking %s cancelled by account %s", booking.id, identity.account_id)

    return RideResult(success=True, ride=booking.ride, booking=booking, message="Booking cancelled.")


@retry_on_transient
def expire_pending_bookings(older_than_minutes: int = None, now: datetime = None) -> int:
    """
    Expire PENDING bookings older than the TTL, and any left on rides that are
    no longer OPEN.

    Returns the number of bookings expired.
    """
    if older_than_minutes is None:
        older_than_minutes = int(getattr(settings, "PENDING_BOOKING_TTL_MINUTES", 24 * 60))
    now = now or timezone.now()
    cutoff = now - timedelta(minutes=older_than_minutes)

    stale = Booking.objects.filter(status=BookingStatus.PENDING, created_at__lt=cutoff).update(
        status=BookingStatus.EXPIRED
    )
    orphaned = (
        Booking.objects.filter(status=BookingStatus.PENDING)
        .exclude(ride__status=RideStatus.OPEN)
        .update(status=BookingStatus.EXPIRED)
    )

    total = stale + orphaned
    if total:
        logger.info("Expired %s pending booking(s) (%s stale, %s orphaned)", total, stale, orphaned)
    return total
