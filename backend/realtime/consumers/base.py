"""Base WebSocket consumer shared by the ride and chat sockets."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Authenticated socket that tracks the groups it joins.

    Every connection joins ``user_<id>`` so server code can reach one account.
    Subclasses override ``on_connect`` and ``handle_message``; ride and chat
    events pushed with ``group_send`` land on the handlers at the bottom.
    """

    async def connect(self):
        self.user = self.scope.get("user")

        if self.user is None or self.user.is_anonymous:
            await self.close(code=4401)
            return

        self.user_id = self.user.id
        self.role = getattr(self.user, "role", None)
        self.joined_groups: Set[str] = set()

        await self._join_group(f"user_{self.user_id}")
        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        for group in list(getattr(self, "joined_groups", ())):
            await self._leave_group(group)

    async def receive_json(self, data: Dict[str, Any]):
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling %s from user %s", msg_type, self.user_id)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    async def send_success(self, event_type: str, **kwargs):
        await self.send_json({"type": event_type, **kwargs})

    # ---------------------- Common Event Handlers ----------------------

    async def _forward_ride_event(self, event, default_message: str = ""):
        await self.send_json({
            "type": event.get("type"),
            "ride_id": event.get("ride_id"),
            "message": event.get("message", default_message),
            "ride": event.get("ride_data", {}),
        })

    async def ride_accepted(self, event):
        await self._forward_ride_event(event, "Ride accepted")

    async def ride_started(self, event):
        await self._forward_ride_event(event, "Trip started")

    async def ride_completed(self, event):
        await self._forward_ride_event(event, "Ride completed")

    async def ride_cancelled(self, event):
        await self._forward_ride_event(event)

    async def chat_message(self, event):
        """New message stored in a conversation this socket follows."""
        await self.send_json({
            "type": "chat_message",
            "conversation_id": event.get("conversation_id"),
            "message": {
                "id": event.get("message_id"),
                "sender_id": event.get("sender_id"),
                "body": event.get("body"),
                "created_at": event.get("created_at"),
            },
        })
