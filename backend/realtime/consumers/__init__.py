"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .conversation_consumer import ConversationConsumer
from .ride_consumer import RideConsumer

__all__ = [
    "BaseConsumer",
    "ConversationConsumer",
    "RideConsumer",
]
