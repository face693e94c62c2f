"""
Typed identity resolved once at the request boundary.

Downstream services receive an ``Identity`` and never look at the raw session
or user payload again.
"""

from dataclasses import dataclass

from .models import Role
from services.exceptions import ForbiddenError, UnauthenticatedError, ValidationError

# Older clients still send the retired combined role.
LEGACY_ROLE_ALIASES = {
    "BOTH": Role.DRIVER,
}


def parse_role(value) -> Role:
    """Normalize a role string to the closed ``Role`` set."""
    if isinstance(value, Role):
        return value

    raw = str(value or "").strip().upper()
    if raw in LEGACY_ROLE_ALIASES:
        return LEGACY_ROLE_ALIASES[raw]
    if raw in Role.values:
        return Role(raw)
    raise ValidationError(f"Unknown role: {value!r}")


@dataclass(frozen=True)
class Identity:
    account_id: int
    role: Role

    @property
    def is_rider(self) -> bool:
        return self.role == Role.RIDER

    @property
    def is_driver(self) -> bool:
        return self.role == Role.DRIVER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def require_role(self, *roles: Role, message: str = None):
        """Raise ``ForbiddenError`` unless the identity holds one of ``roles``."""
        if self.role not in roles:
            allowed = ", ".join(r.label.lower() for r in roles)
            raise ForbiddenError(message or f"Only {allowed} accounts can do this.")
        return self


def identity_from_user(user) -> Identity:
    """Build an ``Identity`` from an authenticated Django user."""
    if user is None or not getattr(user, "is_authenticated", False):
        raise UnauthenticatedError()

    try:
        role = parse_role(getattr(user, "role", None))
    except ValidationError:
        raise ForbiddenError("Account has no valid role.")
    return Identity(account_id=user.pk, role=role)


def identity_from_request(request) -> Identity:
    return identity_from_user(getattr(request, "user", None))
