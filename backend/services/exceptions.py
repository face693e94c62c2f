"""Typed failures raised by the service layer.

Every error carries a stable ``code`` and the HTTP ``status_code`` the API layer
answers with, so callers never have to infer the failure kind from a message.
"""


class ServiceError(Exception):
    """Base class for all service-layer failures."""
    code = "SERVICE_ERROR"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str = None, code: str = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class ValidationError(ServiceError):
    """Raised when input is malformed or out of range. Never retried."""
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input"


class UnauthenticatedError(ServiceError):
    """Raised when no resolved identity is attached to the request."""
    code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(ServiceError):
    """Raised on role mismatch or membership gate denial."""
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ServiceError):
    """Raised when a ride, booking, membership or conversation cannot be found."""
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError):
    """Raised when a uniqueness race was lost. Caller may re-read and retry."""
    code = "CONFLICT"
    status_code = 409
    default_message = "Conflicting update"


class InvalidStateError(ServiceError):
    """Raised when the operation is not valid from the entity's current state."""
    code = "INVALID_STATE"
    status_code = 409
    default_message = "Operation not allowed in the current state"


class TransientInfrastructureError(ServiceError):
    """Raised when the store stayed unreachable after bounded retries."""
    code = "TRANSIENT_INFRASTRUCTURE"
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"
