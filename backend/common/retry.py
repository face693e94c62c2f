"""Bounded retries for transient store failures."""

import functools
import logging
import time

from django.conf import settings
from django.db import InterfaceError, OperationalError, connection

from services.exceptions import TransientInfrastructureError

logger = logging.getLogger(__name__)

# Connection drops and server restarts surface as one of these.
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError)


def is_transient(exc: BaseException) -> bool:
    """Classify an exception by type, never by its message."""
    return isinstance(exc, (TransientInfrastructureError,) + TRANSIENT_DB_ERRORS)


def retry_on_transient(func=None, *, attempts: int = None, backoff: float = None):
    """
    Retry an idempotent read when the store connection drops.

    Inside an atomic block the transaction is already broken by the failure,
    so the error is surfaced immediately instead of retried.

    Usage:
        @retry_on_transient
        def load_rides(): ...

        @retry_on_transient(attempts=3)
        def load_memberships(): ...
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            max_attempts = attempts or getattr(settings, "TRANSIENT_RETRY_ATTEMPTS", 2)
            delay = backoff if backoff is not None else getattr(
                settings, "TRANSIENT_RETRY_BACKOFF_SECONDS", 0.1
            )

            for attempt in range(1, max_attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except TRANSIENT_DB_ERRORS + (TransientInfrastructureError,) as exc:
                    if connection.in_atomic_block or attempt == max_attempts:
                        logger.error(
                            "Transient failure in %s (attempt %s/%s): %s",
                            fn.__name__, attempt, max_attempts, exc,
                        )
                        raise TransientInfrastructureError() from exc

                    logger.warning(
                        "Transient failure in %s (attempt %s/%s), retrying",
                        fn.__name__, attempt, max_attempts,
                    )
                    # Drop the broken connection so the next attempt reconnects.
                    connection.close_if_unusable_or_obsolete()
                    time.sleep(delay * attempt)

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
