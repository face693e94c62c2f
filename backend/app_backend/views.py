import logging

import redis
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import connection
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny

from common.responses import fail, ok

logger = logging.getLogger(__name__)


def _check_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
    return "healthy"


def _check_broker():
    broker_url = getattr(settings, "CELERY_BROKER_URL", "") or ""
    if not broker_url.startswith(("redis://", "rediss://")):
        # Eager/in-memory brokers in development and tests
        return "not used"
    redis.Redis.from_url(broker_url, socket_timeout=3).ping()
    return "healthy"


def _check_channel_layer():
    layer = get_channel_layer()
    if layer is None:
        raise RuntimeError("no channel layer configured")
    return type(layer).__name__


HEALTH_CHECKS = (
    ("database", _check_database),
    ("broker", _check_broker),
    ("channels", _check_channel_layer),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Report whether the ride store, the task broker and the push layer are reachable."""
    services = {}
    failing = []

    for name, check in HEALTH_CHECKS:
        try:
            services[name] = check()
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            services[name] = f"unhealthy: {e}"
            failing.append(name)

    timestamp = timezone.now().isoformat()
    if failing:
        return fail(
            f"Unhealthy: {', '.join(failing)}",
            "TRANSIENT_INFRASTRUCTURE",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            services=services,
            timestamp=timestamp,
        )
    return ok({"status": "healthy", "services": services, "timestamp": timestamp})
