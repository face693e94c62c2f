"""Celery tasks for ride-related background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def send_ride_receipt_task(ride_id: int, recipient_email: str):
    """
    Celery task to email the receipt of a completed ride.

    Scheduled after the completing transaction commits, and on demand from the
    receipt endpoint.
    """
    from rides.models import Ride
    from rides.notifications import send_ride_receipt_email

    try:
        ride = Ride.objects.prefetch_related('bookings').get(id=ride_id)
    except Ride.DoesNotExist:
        logger.warning(f"Ride {ride_id} not found for receipt email")
        return False

    try:
        send_ride_receipt_email(ride, recipient_email)
    except Exception:
        logger.exception(f"Error sending receipt for ride {ride_id}")
        return False

    logger.info(f"Receipt for ride {ride_id} sent")
    return True


@shared_task
def expire_pending_bookings_task():
    """Periodic task: expire stale PENDING bookings."""
    from services.ride_management import expire_pending_bookings

    count = expire_pending_bookings()
    logger.info(f"expire_pending_bookings_task expired {count} booking(s)")
    return count
