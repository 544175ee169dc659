"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.app_consumer import AppConsumer

websocket_urlpatterns = [
    # Shared rider/driver endpoint
    # URL: ws://localhost:8000/ws/app/?token=<access token>
    re_path(
        r"ws/app/$",
        AppConsumer.as_asgi(),
        name="app-ws"
    ),
]
