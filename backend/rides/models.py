from django.db import models
from django.conf import settings
from django.db.models import Q


class RideStatus(models.TextChoices):
    OPEN = 'OPEN', 'Open'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    IN_ROUTE = 'IN_ROUTE', 'In route'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class BookingStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'
    EXPIRED = 'EXPIRED', 'Expired'


class PaymentType(models.TextChoices):
    CARD = 'CARD', 'Card'
    CASH = 'CASH', 'Cash'


RIDE_TERMINAL_STATUSES = (RideStatus.COMPLETED, RideStatus.CANCELLED)
BOOKING_TERMINAL_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.EXPIRED)


class RideQuerySet(models.QuerySet):
    def available(self):
        """OPEN rides with no ACCEPTED booking. Both predicates always go together."""
        return self.filter(status=RideStatus.OPEN).exclude(
            bookings__status=BookingStatus.ACCEPTED
        )


class Ride(models.Model):
    """A trip offer posted by a driver."""

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='posted_rides'
    )

    # Origin
    origin_address = models.TextField()
    origin_lat = models.FloatField()
    origin_lng = models.FloatField()

    # Destination
    destination_address = models.TextField()
    destination_lat = models.FloatField()
    destination_lng = models.FloatField()

    distance_miles = models.FloatField()
    departure_time = models.DateTimeField()
    passenger_count = models.PositiveSmallIntegerField(default=1)

    status = models.CharField(max_length=20, choices=RideStatus.choices, default=RideStatus.OPEN)

    # Trip timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    trip_started_at = models.DateTimeField(null=True, blank=True)
    trip_completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(null=True, blank=True)

    # Settled price, null until the trip completes
    total_price_cents = models.IntegerField(null=True, blank=True)

    objects = RideQuerySet.as_manager()

    class Meta:
        db_table = 'rides'
        ordering = ['departure_time']
        indexes = [
            models.Index(fields=['status', 'departure_time'], name='rides_status_5b0f1e_idx'),
            models.Index(fields=['driver', 'status'], name='rides_driver__a3c2d4_idx'),
        ]

    def __str__(self):
        return f"Ride #{self.id} - {self.origin_address} -> {self.destination_address} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in RIDE_TERMINAL_STATUSES

    def active_booking(self):
        """The ACCEPTED or COMPLETED booking carrying the fare snapshot, if any."""
        return self.bookings.filter(
            status__in=[BookingStatus.ACCEPTED, BookingStatus.COMPLETED]
        ).order_by('created_at').first()


class Booking(models.Model):
    """A rider's claim on a ride, carrying the frozen fare snapshot."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='bookings'
    )

    rider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='bookings'
    )

    status = models.CharField(max_length=20, choices=BookingStatus.choices, default=BookingStatus.PENDING)

    payment_type = models.CharField(max_length=10, choices=PaymentType.choices, default=PaymentType.CARD)
    cash_discount_bps = models.PositiveIntegerField(default=0)

    # Fare snapshot, written once at acceptance
    base_amount_cents = models.IntegerField(null=True, blank=True)
    discount_cents = models.IntegerField(null=True, blank=True)
    final_amount_cents = models.IntegerField(null=True, blank=True)
    currency = models.CharField(max_length=3, default='usd')

    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['ride'],
                condition=Q(status='ACCEPTED'),
                name='unique_accepted_booking_per_ride'
            )
        ]
        indexes = [
            models.Index(fields=['ride', 'status'], name='bookings_ride_id_7e1f90_idx'),
            models.Index(fields=['rider', 'status'], name='bookings_rider_i_c94b21_idx'),
        ]

    def __str__(self):
        return f"Booking #{self.id} - Ride {self.ride_id} - {self.rider} - {self.status}"

    @property
    def has_fare_snapshot(self):
        return self.final_amount_cents is not None

    def fare_snapshot(self):
        from services.pricing import FareBreakdown

        if not self.has_fare_snapshot:
            return None
        return FareBreakdown(
            base_amount_cents=self.base_amount_cents,
            discount_cents=self.discount_cents,
            final_amount_cents=self.final_amount_cents,
        )
