"""
Membership service - access gating for lifecycle actions.
"""

from .gate import (
    GateDecision,
    MembershipState,
    evaluate_membership,
    extend_membership,
    grant_membership,
    grant_trial,
    guard_membership,
    membership_summary,
    membership_type_for_role,
    require_membership,
)

__all__ = [
    "GateDecision",
    "MembershipState",
    "evaluate_membership",
    "extend_membership",
    "grant_membership",
    "grant_trial",
    "guard_membership",
    "membership_summary",
    "membership_type_for_role",
    "require_membership",
]
