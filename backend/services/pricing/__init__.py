"""
Pricing service - fare computation and display precedence.
"""

from .fare_engine import (
    PAYMENT_TYPES,
    FareBreakdown,
    base_fare_cents,
    compute_fare,
    contract_fare,
    default_discount_bps,
    format_usd,
    normalize_payment_type,
    resolve_display_fare,
)

__all__ = [
    "PAYMENT_TYPES",
    "FareBreakdown",
    "base_fare_cents",
    "compute_fare",
    "contract_fare",
    "default_discount_bps",
    "format_usd",
    "normalize_payment_type",
    "resolve_display_fare",
]
