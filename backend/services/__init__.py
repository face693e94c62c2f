"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - pricing: Fare computation and display precedence
    - membership: Membership gate for lifecycle actions
    - ride_management: Ride and booking lifecycle operations
    - messaging: Conversation read tracking
"""
