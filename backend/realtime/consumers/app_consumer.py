"""Single WebSocket endpoint shared by riders and drivers."""

import logging
from typing import Dict, Any, Tuple

from channels.db import database_sync_to_async

from .base import BaseConsumer
from drivers import services as driver_services
from drivers.models import DriverProfile
from realtime.registry import get_connection_registry

logger = logging.getLogger(__name__)

ROLES = ("user", "driver")


class AppConsumer(BaseConsumer):
    """
    WebSocket consumer for live push.

    Handles:
        - join: register this socket as the account's live connection
        - update-location: driver position reports, relayed to the rider of
          the driver's current trip

    Server-side pushes arrive as ``push.event`` messages on this socket's
    channel and are forwarded as ``{"event": ..., "data": ...}``.
    """

    async def on_disconnect(self, close_code):
        account_id = get_connection_registry().disconnect(self.channel_name)
        if account_id is not None:
            logger.info("Account %s went offline", account_id)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "join":
            await self._handle_join(data)
        elif msg_type == "update-location":
            await self._handle_location_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_join(self, data: Dict[str, Any]):
        user_id = data.get("userId")
        role = data.get("role")

        if role not in ROLES:
            await self.send_error("Invalid role. Must be: user or driver")
            return

        # A socket may only register the account it authenticated as
        if str(user_id) != str(self.user_id) or role != self.role:
            await self.send_error("userId and role must match the authenticated account")
            return

        get_connection_registry().connect(self.user_id, role, self.channel_name)
        await self.send_success("joined", userId=self.user_id, role=role)

    async def _handle_location_update(self, data: Dict[str, Any]):
        if self.role != "driver":
            await self.send_error("Only drivers can update location")
            return

        try:
            lat = float(data["latitude"])
            lon = float(data["longitude"])
        except (KeyError, TypeError, ValueError):
            await self.send_error("update-location requires numeric latitude and longitude")
            return

        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            await self.send_error("Coordinates out of range")
            return

        updated, relayed = await self._update_driver_location_db(lat, lon)
        if not updated:
            await self.send_error("Driver profile not found")
            return

        await self.send_success("location-updated", latitude=lat, longitude=lon, relayed=relayed)

    # ---------------------- Push Handler ----------------------

    async def push_event(self, event):
        """Forward a server-side push to the client."""
        await self.send_json({
            "event": event.get("event"),
            "data": event.get("payload", {}),
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_driver_location_db(self, lat: float, lon: float) -> Tuple[bool, bool]:
        profile = DriverProfile.objects.filter(user_id=self.user_id).first()
        if profile is None:
            return False, False
        lat, lon = round(lat, 6), round(lon, 6)
        driver_services.update_driver_location(profile, lat, lon)
        return True, driver_services.relay_location_to_rider(self.user_id, lat, lon)
