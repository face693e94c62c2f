"""
Membership gating and extension.

This module handles:
    - Deciding NONE / TRIAL / ACTIVE_PAID / EXPIRED for an account
    - Allowing or denying lifecycle actions based on that state
    - Extending and granting memberships
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.identity import Identity
from accounts.models import Role
from common.retry import retry_on_transient
from memberships.models import Membership, MembershipStatus, MembershipType
from services.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_EXTENSION_DAYS = 3650


class MembershipState(str, Enum):
    NONE = "NONE"
    TRIAL = "TRIAL"
    ACTIVE_PAID = "ACTIVE_PAID"
    EXPIRED = "EXPIRED"


@dataclass
class GateDecision:
    """Result of evaluating an account's membership."""
    allowed: bool
    state: MembershipState
    membership: Optional[Membership] = None
    reason: str = ""
    code: Optional[str] = None


def membership_type_for_role(role) -> str:
    return MembershipType.DRIVER if role == Role.DRIVER else MembershipType.RIDER


def latest_membership(account_id: int, membership_type: str, for_update: bool = False) -> Optional[Membership]:
    """The authoritative row: most recently started for (account, type)."""
    qs = Membership.objects.filter(user_id=account_id, type=membership_type)
    if for_update:
        qs = qs.select_for_update()
    return qs.order_by('-start_date', '-id').first()


def evaluate_membership(membership: Optional[Membership], allow_trial: bool, now: datetime = None) -> GateDecision:
    """Pure decision over a membership row and the current time."""
    now = now or timezone.now()

    if membership is None:
        return GateDecision(False, MembershipState.NONE, None, "No membership found.", "MEMBERSHIP_REQUIRED")

    if membership.expiry_date is None:
        return GateDecision(
            False, MembershipState.EXPIRED, membership,
            "Membership has no expiry date (invalid).", "MEMBERSHIP_INVALID",
        )

    if membership.expiry_date <= now:
        return GateDecision(False, MembershipState.EXPIRED, membership, "Membership is expired.", "MEMBERSHIP_EXPIRED")

    if membership.is_paid:
        return GateDecision(True, MembershipState.ACTIVE_PAID, membership)

    if allow_trial:
        return GateDecision(True, MembershipState.TRIAL, membership)

    return GateDecision(
        False, MembershipState.TRIAL, membership,
        "Trial is not sufficient. Paid membership required.", "TRIAL_INSUFFICIENT",
    )


@retry_on_transient
def guard_membership(account_id: int, role, allow_trial: bool, now: datetime = None) -> GateDecision:
    """Look up the account's latest membership for its role and evaluate it."""
    membership = latest_membership(account_id, membership_type_for_role(role))
    return evaluate_membership(membership, allow_trial, now=now)


def trial_allowed_for(action: str) -> bool:
    """Per-action trial policy; unknown actions accept trials."""
    policy = getattr(settings, "MEMBERSHIP_TRIAL_POLICY", {}) or {}
    return bool(policy.get(action, True))


def require_membership(identity: Identity, action: str, now: datetime = None) -> GateDecision:
    """
    Gate a lifecycle action.

    Raises:
        ForbiddenError: If the gate denies the account
    """
    decision = guard_membership(identity.account_id, identity.role, trial_allowed_for(action), now=now)
    if not decision.allowed:
        logger.info(
            "Membership gate denied %s for account %s: %s",
            action, identity.account_id, decision.state.value,
        )
        raise ForbiddenError(decision.reason or "Membership required.", code=decision.code)
    return decision


def _validate_days(days) -> int:
    if isinstance(days, bool):
        raise ValidationError("Invalid days")
    try:
        value = float(days)
    except (TypeError, ValueError):
        raise ValidationError("Invalid days")
    if not math.isfinite(value):
        raise ValidationError("Invalid days")
    value = int(math.floor(value))
    if value <= 0 or value > MAX_EXTENSION_DAYS:
        raise ValidationError(f"Invalid days (must be 1..{MAX_EXTENSION_DAYS})")
    return value


def _validate_types(membership_types: Iterable[str]) -> List[str]:
    types = []
    for value in membership_types:
        raw = str(value or "").strip().upper()
        if raw not in MembershipType.values:
            raise ValidationError(f"Invalid membership type: {value!r}")
        if raw not in types:
            types.append(raw)
    if not types:
        raise ValidationError("At least one membership type is required")
    return types


@transaction.atomic
def extend_membership(account_id: int, membership_types: Iterable[str], days, now: datetime = None) -> List[Membership]:
    """
    Push each membership's expiry forward by ``days``.

    The new expiry is ``max(now, current_expiry) + days``, so an active grant is
    extended from its current end and a lapsed one restarts from now. Calls are
    cumulative, not idempotent.

    Args:
        account_id: Account whose memberships are extended
        membership_types: Membership types to extend (RIDER and/or DRIVER)
        days: Number of days to add (1..3650)
        now: Clock override

    Returns:
        The created or updated Membership rows, one per type

    Raises:
        NotFoundError: If the account does not exist
        ValidationError: On invalid days or types
    """
    from django.contrib.auth import get_user_model

    days = _validate_days(days)
    types = _validate_types(membership_types)
    now = now or timezone.now()

    if not get_user_model().objects.filter(pk=account_id).exists():
        raise NotFoundError("User not found")

    results = []
    for membership_type in types:
        latest = latest_membership(account_id, membership_type, for_update=True)

        base = now
        if latest is not None and latest.expiry_date is not None and latest.expiry_date > now:
            base = latest.expiry_date
        new_expiry = base + timedelta(days=days)

        if latest is None:
            latest = Membership.objects.create(
                user_id=account_id,
                type=membership_type,
                status=MembershipStatus.ACTIVE,
                start_date=now,
                expiry_date=new_expiry,
                amount_paid_cents=0,
            )
        else:
            latest.expiry_date = new_expiry
            latest.status = MembershipStatus.ACTIVE
            latest.save(update_fields=['expiry_date', 'status', 'updated_at'])

        logger.info(
            "Extended %s membership for account %s by %s days to %s",
            membership_type, account_id, days, new_expiry.isoformat(),
        )
        results.append(latest)

    return results


@transaction.atomic
def grant_membership(
    account_id: int,
    membership_type: str,
    days,
    plan: str = None,
    amount_paid_cents: int = 0,
    now: datetime = None,
) -> Membership:
    """
    Record a new grant starting now. A positive ``amount_paid_cents`` makes it paid.

    The new row becomes authoritative because it is the most recently started.
    """
    days = _validate_days(days)
    membership_type = _validate_types([membership_type])[0]
    if isinstance(amount_paid_cents, bool) or not isinstance(amount_paid_cents, int) or amount_paid_cents < 0:
        raise ValidationError("amount_paid_cents must be a non-negative integer")

    now = now or timezone.now()
    membership = Membership.objects.create(
        user_id=account_id,
        type=membership_type,
        plan=plan,
        status=MembershipStatus.ACTIVE,
        start_date=now,
        expiry_date=now + timedelta(days=days),
        amount_paid_cents=amount_paid_cents,
    )
    logger.info(
        "Granted %s %s membership to account %s for %s days",
        "paid" if membership.is_paid else "trial", membership_type, account_id, days,
    )
    return membership


def grant_trial(account_id: int, role, now: datetime = None) -> Membership:
    """First trial grant for a freshly registered account."""
    return grant_membership(
        account_id,
        membership_type_for_role(role),
        getattr(settings, "MEMBERSHIP_TRIAL_DAYS", 30),
        now=now,
    )


def days_until(moment: Optional[datetime], now: datetime = None) -> Optional[int]:
    """Whole days remaining (ceil); 0 once passed; None without a date."""
    if moment is None:
        return None
    now = now or timezone.now()
    remaining = (moment - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining / 86400)


def membership_summary(identity: Identity, now: datetime = None) -> dict:
    """Normalized view of the membership backing this identity's role."""
    now = now or timezone.now()
    decision = guard_membership(identity.account_id, identity.role, allow_trial=True, now=now)
    membership = decision.membership

    return {
        "state": decision.state.value,
        "active": decision.allowed,
        "reason": decision.reason or None,
        "membership": {
            "id": membership.id if membership else None,
            "type": membership_type_for_role(identity.role),
            "plan": membership.plan if membership else None,
            "status": membership.status if membership else None,
            "amount_paid_cents": membership.amount_paid_cents if membership else None,
            "start_date": membership.start_date.isoformat() if membership else None,
            "expiry_date": membership.expiry_date.isoformat() if membership and membership.expiry_date else None,
            "is_trial": decision.state == MembershipState.TRIAL,
            "is_paid": decision.state == MembershipState.ACTIVE_PAID,
            "days_remaining": days_until(membership.expiry_date, now) if membership else None,
        },
    }
