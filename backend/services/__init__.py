"""
Services package - Business logic layer.

This package contains the business logic that operates on Django models
but is decoupled from the HTTP/WebSocket layer.

Modules:
    - pricing: Fare calculation
    - maps: Routing/geocoding provider adapter
    - matching: Driver locality search and offer dispatch
    - ride_management: Core ride lifecycle operations
"""
