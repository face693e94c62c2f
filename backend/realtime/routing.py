"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.conversation_consumer import ConversationConsumer
from .consumers.ride_consumer import RideConsumer

websocket_urlpatterns = [
    # Ride updates for the driver and rider of a ride
    # URL: ws://localhost:8000/ws/ride/
    re_path(
        r"ws/ride/$",
        RideConsumer.as_asgi(),
        name="ride-ws"
    ),

    # Live chat for one conversation
    # URL: ws://localhost:8000/ws/chat/<conversation_id>/
    re_path(
        r"ws/chat/(?P<conversation_id>\d+)/$",
        ConversationConsumer.as_asgi(),
        name="chat-ws"
    ),
]
