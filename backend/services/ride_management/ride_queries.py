"""
Read-side queries for the driver portal, rider history and receipts.

Every total shown here comes from ``resolve_display_fare`` on prefetched bookings.
"""

from typing import Dict, List

from django.db.models import Prefetch

from accounts.identity import Identity
from accounts.models import Role
from chat.models import Conversation
from common.retry import retry_on_transient
from rides.models import Booking, BookingStatus, Ride, RideStatus
from services.exceptions import ForbiddenError, InvalidStateError, NotFoundError


def _with_related(qs):
    return qs.select_related('driver').prefetch_related(
        Prefetch('bookings', queryset=Booking.objects.select_related('rider').order_by('created_at')),
        Prefetch('conversations', queryset=Conversation.objects.order_by('id')),
    )


@retry_on_transient
def driver_portal(identity: Identity) -> Dict[str, List[Ride]]:
    """A driver's rides grouped by where they are in the lifecycle."""
    identity.require_role(Role.DRIVER, message="Only drivers can view the driver portal.")

    rides = list(_with_related(Ride.objects.filter(driver_id=identity.account_id)).order_by('departure_time', 'id'))

    return {
        "open": [r for r in rides if r.status == RideStatus.OPEN],
        "upcoming": [r for r in rides if r.status in (RideStatus.ACCEPTED, RideStatus.IN_ROUTE)],
        "completed": [r for r in rides if r.status == RideStatus.COMPLETED],
        "cancelled": [r for r in rides if r.status == RideStatus.CANCELLED],
    }


@retry_on_transient
def rider_rides(identity: Identity) -> List[Ride]:
    """Rides the account has booked, most recent departure first."""
    ride_ids = Booking.objects.filter(rider_id=identity.account_id).values('ride_id')
    return list(_with_related(Ride.objects.filter(id__in=ride_ids)).order_by('-departure_time', '-id'))


def receipt_booking(ride: Ride):
    for booking in ride.bookings.all():
        if booking.status in (BookingStatus.ACCEPTED, BookingStatus.COMPLETED):
            return booking
    return None


@retry_on_transient
def ride_for_receipt(identity: Identity, ride_id) -> Ride:
    """
    A completed ride visible to its driver, its rider or an admin.

    Raises:
        NotFoundError: If the ride does not exist
        ForbiddenError: If the account is not a party to the ride
        InvalidStateError: If the ride has not completed yet
    """
    try:
        ride = _with_related(Ride.objects.all()).get(pk=ride_id)
    except (Ride.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Ride not found.")

    booking = receipt_booking(ride)
    is_party = ride.driver_id == identity.account_id or (
        booking is not None and booking.rider_id == identity.account_id
    )
    if not (is_party or identity.is_admin):
        raise ForbiddenError("You do not have access to this receipt.")

    if ride.status != RideStatus.COMPLETED:
        raise InvalidStateError("Receipts are only available for completed rides.")

    return ride
