"""
Notification helpers for sending WebSocket messages to connected clients.

This module provides functions to:
- Send ride lifecycle events to everyone following a ride: ride_<ride_id>
- Send events to a single account: user_<account_id>
- Push new chat messages to a conversation: conversation_<conversation_id>

Push delivery is best effort. Failures are logged and never propagate into the
transition that triggered them.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def _group_send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    try:
        async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to push %s to group %s", payload.get("type"), group)
        return False

    logger.debug("WS -> %s: %s", group, payload)
    return True


def ride_payload(ride) -> Dict[str, Any]:
    return {
        "id": ride.id,
        "status": ride.status,
        "driver_id": ride.driver_id,
        "trip_started_at": ride.trip_started_at.isoformat() if ride.trip_started_at else None,
        "trip_completed_at": ride.trip_completed_at.isoformat() if ride.trip_completed_at else None,
        "total_price_cents": ride.total_price_cents,
    }


def notify_ride_group(
    event_type: str,
    ride,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send a lifecycle event to all participants following a ride.

    Args:
        event_type: Handler name in consumer (ride_accepted, ride_started, ride_completed, ride_cancelled)
        ride: Ride model instance
        message: Optional message to include
        extra: Additional payload data

    Returns:
        True if sent, False otherwise
    """
    payload = {
        "type": event_type,
        "ride_id": ride.id,
        "ride_data": ride_payload(ride),
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    return _group_send(f"ride_{ride.id}", payload)


def notify_user_event(event_type: str, account_id: int, message: str = "", extra: Dict[str, Any] = None) -> bool:
    """Send an event to one account's personal group."""
    if not account_id:
        return False

    payload = {"type": event_type, **(extra or {})}
    if message:
        payload["message"] = message

    return _group_send(f"user_{account_id}", payload)


def notify_conversation(conversation_id: int, message) -> bool:
    """Push a newly stored chat message to the conversation group."""
    return _group_send(
        f"conversation_{conversation_id}",
        {
            "type": "chat_message",
            "conversation_id": conversation_id,
            "message_id": message.id,
            "sender_id": message.sender_id,
            "body": message.body,
            "created_at": message.created_at.isoformat(),
        },
    )
