"""
Realtime app for WebSocket push of ride and chat events.

This app provides:
- WebSocket consumers for ride updates and ride conversations
- Notification helpers for pushing events from the service layer
- JWT/Cookie authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (ride, conversation)
    - notifications.py: Best-effort group_send helpers

Usage:
    from realtime.consumers import RideConsumer, ConversationConsumer
    from realtime.notifications import notify_ride_group, notify_conversation
"""
