"""
Connection registry: account id -> live WebSocket channel name.

One registry per process. Entries are created on ``join`` and removed when
the same channel disconnects; a newer connection for an account always wins,
so a late disconnect of an older channel leaves the newer entry in place.
Nothing is persisted: after a restart every account is offline until it
joins again.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connection:
    account_id: int
    role: str
    handle: str


class ConnectionRegistry:
    """Thread-safe map of account ids to their most recent live connection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_account: Dict[int, Connection] = {}
        self._by_handle: Dict[str, int] = {}

    def connect(self, account_id: int, role: str, handle: str) -> Connection:
        """Register ``handle`` as the live connection of ``account_id``, replacing any older one."""
        connection = Connection(account_id=int(account_id), role=role, handle=handle)
        with self._lock:
            previous = self._by_account.get(connection.account_id)
            if previous is not None and previous.handle != handle:
                self._by_handle.pop(previous.handle, None)
            owner = self._by_handle.get(handle)
            if owner is not None and owner != connection.account_id:
                self._by_account.pop(owner, None)
            self._by_account[connection.account_id] = connection
            self._by_handle[handle] = connection.account_id
        logger.info("Account %s connected as %s on %s", account_id, role, handle)
        return connection

    def disconnect(self, handle: str) -> Optional[int]:
        """
        Drop the entry owned by ``handle``.

        Returns the account id that was removed, or None when the handle is
        unknown or no longer the account's current connection.
        """
        with self._lock:
            account_id = self._by_handle.pop(handle, None)
            if account_id is None:
                return None
            current = self._by_account.get(account_id)
            if current is None or current.handle != handle:
                return None
            del self._by_account[account_id]
        logger.info("Account %s disconnected from %s", account_id, handle)
        return account_id

    def get(self, account_id: Optional[int]) -> Optional[str]:
        """Live handle for an account, or None when it is offline."""
        if account_id is None:
            return None
        with self._lock:
            connection = self._by_account.get(int(account_id))
        return connection.handle if connection else None

    def is_online(self, account_id: Optional[int]) -> bool:
        return self.get(account_id) is not None

    def clear(self) -> None:
        with self._lock:
            self._by_account.clear()
            self._by_handle.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_account)


def send_to_connection(handle: Optional[str], event: str, payload: dict) -> bool:
    """
    Push ``event`` to one live connection. Best effort.

    Returns True if the message was handed to the channel layer, False if
    there is no handle, no channel layer, or the send failed.
    """
    if not handle:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available, dropping %s", event)
        return False

    try:
        async_to_sync(channel_layer.send)(handle, {
            "type": "push.event",
            "event": event,
            "payload": payload,
        })
    except Exception:
        logger.exception("Failed to push %s to %s", event, handle)
        return False

    logger.debug("WS -> %s: %s", handle, event)
    return True


# ---------------------- Singleton Instance ----------------------

_connection_registry: Optional[ConnectionRegistry] = None
_registry_lock = threading.Lock()


def get_connection_registry() -> ConnectionRegistry:
    """Get the process-wide ConnectionRegistry instance."""
    global _connection_registry
    if _connection_registry is None:
        with _registry_lock:
            if _connection_registry is None:
                _connection_registry = ConnectionRegistry()
    return _connection_registry
