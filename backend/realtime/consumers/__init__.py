"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .app_consumer import AppConsumer

__all__ = [
    "BaseConsumer",
    "AppConsumer",
]
