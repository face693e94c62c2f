"""
Receipt emails for completed rides.

Delivery runs in a Celery task. Queueing and sending failures are logged and
never surface to the caller: a ride that completed stays completed.
"""

import logging
from typing import Iterable

from django.conf import settings
from django.core.mail import send_mail

from services.pricing import format_usd, resolve_display_fare

logger = logging.getLogger(__name__)


def build_receipt_message(ride):
    """Subject and plain text body for a ride receipt."""
    fare = resolve_display_fare(ride)
    completed = ride.trip_completed_at.strftime("%b %d, %Y %H:%M") if ride.trip_completed_at else "-"

    lines = [
        f"Thanks for riding! Here is your receipt for ride #{ride.id}.",
        "",
        f"From: {ride.origin_address}",
        f"To: {ride.destination_address}",
        f"Distance: {ride.distance_miles:.1f} mi",
        f"Completed: {completed}",
        "",
        f"Fare: {format_usd(fare.base_amount_cents)}",
    ]
    if fare.discount_cents:
        lines.append(f"Cash discount: -{format_usd(fare.discount_cents)}")
    lines.append(f"Total: {format_usd(fare.final_amount_cents)}")

    return f"Your ride receipt (#{ride.id})", "\n".join(lines)


def send_ride_receipt_email(ride, recipient_email: str) -> int:
    subject, body = build_receipt_message(ride)
    return send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [recipient_email],
        fail_silently=False,
    )


def dispatch_receipt_email(ride_id: int, recipients: Iterable[str]) -> int:
    """Queue one receipt task per recipient. Returns how many were queued."""
    from rides.tasks import send_ride_receipt_task

    queued = 0
    for email in recipients:
        if not email:
            continue
        try:
            send_ride_receipt_task.delay(ride_id, email)
            queued += 1
        except Exception:
            logger.exception("Failed to queue receipt email for ride %s", ride_id)
    return queued
