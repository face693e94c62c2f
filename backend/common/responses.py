"""
Uniform JSON envelopes for the API.

Every response carries an explicit ``ok`` discriminant so clients never infer
success from the HTTP status alone:

    {"ok": true, ...payload}
    {"ok": false, "error": "...", "code": "..."}
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db import InterfaceError, OperationalError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from services.exceptions import ServiceError, TransientInfrastructureError

logger = logging.getLogger(__name__)


def ok(payload=None, status_code=status.HTTP_200_OK, **extra) -> Response:
    """Build a success response."""
    body = {"ok": True}
    if payload:
        body.update(payload)
    body.update(extra)
    return Response(body, status=status_code)


def fail(message: str, code: str, status_code: int, **extra) -> Response:
    """Build a failure response."""
    body = {"ok": False, "error": message, "code": code}
    body.update(extra)
    return Response(body, status=status_code)


_DRF_CODES = {
    drf_exceptions.NotAuthenticated: "UNAUTHENTICATED",
    drf_exceptions.AuthenticationFailed: "UNAUTHENTICATED",
    drf_exceptions.PermissionDenied: "FORBIDDEN",
    drf_exceptions.NotFound: "NOT_FOUND",
    drf_exceptions.MethodNotAllowed: "METHOD_NOT_ALLOWED",
    drf_exceptions.ParseError: "VALIDATION_ERROR",
    drf_exceptions.Throttled: "THROTTLED",
}


def api_exception_handler(exc, context):
    """DRF ``EXCEPTION_HANDLER`` rendering every failure with the ``ok: false`` envelope."""
    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = drf_exceptions.PermissionDenied()

    if isinstance(exc, ServiceError):
        return fail(exc.message, exc.code, exc.status_code)

    if isinstance(exc, (OperationalError, InterfaceError)):
        logger.exception("Database unavailable while handling %s", context.get("view"))
        transient = TransientInfrastructureError()
        return fail(transient.message, transient.code, transient.status_code)

    if isinstance(exc, drf_exceptions.ValidationError):
        return fail(
            "Invalid request",
            "VALIDATION_ERROR",
            status.HTTP_400_BAD_REQUEST,
            details=exc.detail,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    code = "ERROR"
    for exc_class, exc_code in _DRF_CODES.items():
        if isinstance(exc, exc_class):
            code = exc_code
            break

    detail = response.data.get("detail") if isinstance(response.data, dict) else response.data
    response.data = {"ok": False, "error": str(detail), "code": code}
    return response
