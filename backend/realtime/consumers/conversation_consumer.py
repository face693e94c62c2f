"""Chat WebSocket consumer for one ride conversation."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from services.exceptions import ServiceError
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class ConversationConsumer(BaseConsumer):
    """
    Live chat between the driver and rider of a ride.

    Clients can send messages and mark the conversation read over the socket;
    messages posted over HTTP arrive here too via the conversation group.
    """

    async def on_connect(self):
        self.conversation_id = int(self.scope["url_route"]["kwargs"]["conversation_id"])

        allowed = await self._is_party()
        if not allowed:
            await self.send_error("You are not part of this conversation")
            await self.close()
            return

        await self._join_group(f"conversation_{self.conversation_id}")
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "conversation_id": self.conversation_id,
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "send_message":
            await self._handle_send_message(data)
        elif msg_type == "mark_read":
            await self._handle_mark_read()
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_send_message(self, data: Dict[str, Any]):
        try:
            await self._post_message(data.get("body"))
        except ServiceError as e:
            await self.send_error(e.message)

    async def _handle_mark_read(self):
        read_at = await self._mark_read()
        await self.send_success("marked_read", conversation_id=self.conversation_id, last_read_at=read_at)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _is_party(self) -> bool:
        from services.messaging import get_conversation_for
        try:
            get_conversation_for(self.user_id, self.conversation_id)
        except ServiceError:
            return False
        return True

    @database_sync_to_async
    def _post_message(self, body):
        from services.messaging import get_conversation_for, post_message
        conversation = get_conversation_for(self.user_id, self.conversation_id)
        return post_message(conversation, self.user_id, body).id

    @database_sync_to_async
    def _mark_read(self) -> str:
        from services.messaging import get_conversation_for, mark_read, party_for_account
        conversation = get_conversation_for(self.user_id, self.conversation_id)
        return mark_read(conversation, party_for_account(conversation, self.user_id)).isoformat()
