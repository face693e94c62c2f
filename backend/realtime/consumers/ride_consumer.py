"""Ride tracking WebSocket consumer for real-time ride updates."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class RideConsumer(BaseConsumer):
    """
    WebSocket consumer for ride updates.

    Used by both drivers and riders to:
        - Follow rides they are part of
        - Receive ride status updates (accepted, started, completed, cancelled)

    Events are pushed by ``realtime.notifications.notify_ride_group``.
    """

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle ride following messages."""

        if msg_type == "follow_ride":
            await self._handle_follow_ride(data)
        elif msg_type == "unfollow_ride":
            await self._handle_unfollow_ride(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_follow_ride(self, data: Dict[str, Any]):
        """Join ride_<ride_id>; only the driver and the ride's riders may follow it."""
        ride_id = data.get("ride_id")

        if ride_id is None:
            await self.send_error("follow_ride requires ride_id")
            return

        is_valid = await self._validate_ride_participant(ride_id)
        if not is_valid:
            await self.send_error("You are not authorized to follow this ride")
            return

        await self._join_group(f"ride_{ride_id}")
        await self.send_success("ride_followed", ride_id=ride_id)

    async def _handle_unfollow_ride(self, data: Dict[str, Any]):
        ride_id = data.get("ride_id")

        if ride_id is None:
            return

        await self._leave_group(f"ride_{ride_id}")
        await self.send_success("ride_unfollowed", ride_id=ride_id)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _validate_ride_participant(self, ride_id) -> bool:
        """Check if user is the ride's driver or holds a booking on it."""
        from rides.models import Ride
        try:
            ride = Ride.objects.get(id=int(ride_id))
        except (Ride.DoesNotExist, TypeError, ValueError):
            return False
        if ride.driver_id == self.user_id:
            return True
        return ride.bookings.filter(rider_id=self.user_id).exists()
