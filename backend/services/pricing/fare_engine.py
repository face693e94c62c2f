"""
Fare computation in integer minor units (cents).

All displayed totals go through ``resolve_display_fare`` so the same ride shows
the same number on the ride listing, the driver portal and the receipt.
"""

import math
from dataclasses import asdict, dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from django.conf import settings

from rides.models import BookingStatus, PaymentType
from services.exceptions import ValidationError

PAYMENT_TYPES = tuple(PaymentType.values)

BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class FareBreakdown:
    base_amount_cents: int
    discount_cents: int
    final_amount_cents: int

    def as_dict(self):
        return asdict(self)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_payment_type(value) -> PaymentType:
    payment_type = str(value or "").strip().upper()
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError("Missing/invalid paymentType (CARD or CASH).")
    return PaymentType(payment_type)


def default_discount_bps(payment_type: str) -> int:
    """Cash bookings get the configured discount unless the caller picks one."""
    if payment_type == PaymentType.CASH:
        return int(getattr(settings, "DEFAULT_CASH_DISCOUNT_BPS", 1000))
    return 0


def compute_fare(base_cents: int, payment_type: str, cash_discount_bps: int = 0) -> FareBreakdown:
    """
    Apply the cash discount to a base fare.

    The discount only applies to CASH payments with a positive rate and is
    rounded half-up; the final amount never drops below zero.

    >>> compute_fare(10000, PaymentType.CASH, 1000)
    FareBreakdown(base_amount_cents=10000, discount_cents=1000, final_amount_cents=9000)
    """
    if isinstance(base_cents, bool) or not isinstance(base_cents, int) or base_cents < 0:
        raise ValidationError("Base fare must be a non-negative integer amount of cents.")
    if isinstance(cash_discount_bps, bool) or not isinstance(cash_discount_bps, int) or cash_discount_bps < 0:
        raise ValidationError("Cash discount must be a non-negative integer of basis points.")

    payment_type = normalize_payment_type(payment_type)

    discount_cents = 0
    if payment_type == PaymentType.CASH and cash_discount_bps > 0:
        discount_cents = _round_half_up(
            Decimal(base_cents) * Decimal(cash_discount_bps) / Decimal(BPS_DENOMINATOR)
        )

    return FareBreakdown(
        base_amount_cents=base_cents,
        discount_cents=discount_cents,
        final_amount_cents=max(0, base_cents - discount_cents),
    )


def base_fare_cents(distance_miles: float) -> int:
    """
    Canonical price of a trip: flat booking fee plus a per-mile rate.

    Defaults to $3.00 + $2.00/mile.
    """
    try:
        miles = float(distance_miles)
    except (TypeError, ValueError):
        raise ValidationError("Distance must be a number of miles.")
    if not math.isfinite(miles) or miles < 0:
        raise ValidationError("Distance must be a finite, non-negative number of miles.")

    booking_fee = int(getattr(settings, "FARE_BOOKING_FEE_CENTS", 300))
    per_mile = int(getattr(settings, "FARE_PER_MILE_CENTS", 200))
    return booking_fee + _round_half_up(Decimal(per_mile) * Decimal(str(miles)))


def contract_fare(booking) -> Optional[FareBreakdown]:
    """
    The fare frozen on a booking at accept time, if it is usable.

    A zero snapshot (e.g. a 100% cash discount) does not count as a contract
    price; settlement and display both fall through to the ride's total.
    """
    if booking is None or not booking.final_amount_cents:
        return None
    return booking.fare_snapshot()


def _settled_snapshot(bookings) -> Optional[FareBreakdown]:
    for booking in bookings:
        if booking.status in (BookingStatus.ACCEPTED, BookingStatus.COMPLETED):
            snapshot = contract_fare(booking)
            if snapshot is not None:
                return snapshot
    return None


def resolve_display_fare(ride, bookings: Iterable = None) -> FareBreakdown:
    """
    The one precedence rule for any displayed total.

    1. An accepted/completed booking's frozen snapshot, when positive.
    2. Otherwise the ride's stored total (or the canonical fare for its distance
       when not priced yet), discounted with the pending booking's payment
       type and rate.
    3. Otherwise a plain card price.

    ``bookings`` defaults to ``ride.bookings.all()`` so prefetched rows are reused.
    """
    if bookings is None:
        bookings = ride.bookings.all()
    bookings = list(bookings)

    snapshot = _settled_snapshot(bookings)
    if snapshot is not None:
        return snapshot

    if ride.total_price_cents is not None:
        base = ride.total_price_cents
    else:
        base = base_fare_cents(ride.distance_miles)

    pending = next((b for b in bookings if b.status == BookingStatus.PENDING), None)
    if pending is not None:
        return compute_fare(base, pending.payment_type, pending.cash_discount_bps)
    return compute_fare(base, PaymentType.CARD, 0)


def format_usd(cents: Optional[int]) -> str:
    if cents is None:
        return "$0.00"
    dollars = Decimal(cents) / Decimal(100)
    return f"${dollars:,.2f}"
