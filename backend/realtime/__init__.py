"""
Realtime app: live connections and push delivery.

Key Components:
    - registry.py: account -> live connection handle (newest connection wins)
    - notifications.py: ride event helpers built on the registry
    - consumers/: the shared WebSocket consumer
    - middleware.py: JWT query-string authentication for WebSockets
"""
