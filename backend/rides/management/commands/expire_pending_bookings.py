from django.core.management.base import BaseCommand
from django.utils import timezone
from datetime import timedelta
from rides.models import Booking, BookingStatus
from services.ride_management import expire_pending_bookings
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Expire PENDING bookings older than the configured TTL."

    def add_arguments(self, parser):
        parser.add_argument(
            "--minutes",
            type=int,
            default=None,
            help="Expire bookings older than this many minutes (default: PENDING_BOOKING_TTL_MINUTES).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be expired without changing anything.",
        )

    def handle(self, *args, **options):
        minutes = options["minutes"]
        dry_run = options["dry_run"]

        if dry_run:
            from django.conf import settings
            ttl = minutes if minutes is not None else settings.PENDING_BOOKING_TTL_MINUTES
            cutoff = timezone.now() - timedelta(minutes=ttl)
            count = Booking.objects.filter(status=BookingStatus.PENDING, created_at__lt=cutoff).count()
            self.stdout.write(
                self.style.WARNING(f"DRY RUN: Would expire {count} pending bookings older than {ttl} minutes.")
            )
            return

        count = expire_pending_bookings(older_than_minutes=minutes)
        logger.info(f"Expired {count} pending bookings")
        self.stdout.write(self.style.SUCCESS(f"Expired {count} pending bookings."))
