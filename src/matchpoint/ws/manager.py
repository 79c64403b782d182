"""WebSocket connection manager.

Tracks live connections per user and their channel subscriptions. Two kinds
of channel exist: ``notifications`` and ``conversation:{id}``. Personal
events bypass subscriptions and go to every connection the user holds.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()

NOTIFICATIONS_CHANNEL = "notifications"
CONVERSATION_PREFIX = "conversation:"


def conversation_id_from_channel(channel: str) -> int | None:
    """Parse ``conversation:{id}``; None for anything else."""
    if not channel.startswith(CONVERSATION_PREFIX):
        return None
    raw = channel[len(CONVERSATION_PREFIX):]
    if not raw.isdigit():
        return None
    return int(raw)


def is_valid_channel(channel: str) -> bool:
    return channel == NOTIFICATIONS_CHANNEL or conversation_id_from_channel(channel) is not None


@dataclass
class ClientConnection:
    websocket: WebSocket
    user_id: str
    subscriptions: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class ConnectionManager:
    """All active WebSocket connections of this process."""

    def __init__(self, max_connections_per_user: int = 5) -> None:
        self.max_connections_per_user = max_connections_per_user
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._channels: dict[str, set[str]] = defaultdict(set)  # channel -> {conn_ids}
        self._user_connections: dict[str, set[str]] = defaultdict(set)  # user_id -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def user_connection_count(self, user_id: str) -> int:
        return len(self._user_connections.get(user_id, ()))

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: str) -> bool:
        """Accept the socket unless the user already holds too many. Returns False if refused."""
        if self.user_connection_count(user_id) >= self.max_connections_per_user:
            await websocket.close(code=4008, reason="Too many connections")
            logger.info("ws_refused", user_id=user_id, reason="connection_limit")
            return False

        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)
        return True

    async def disconnect(self, conn_id: str) -> None:
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for channel in client.subscriptions:
            members = self._channels.get(channel)
            if members is not None:
                members.discard(conn_id)
                if not members:
                    del self._channels[channel]

        self._user_connections[client.user_id].discard(conn_id)
        if not self._user_connections[client.user_id]:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    async def subscribe(self, conn_id: str, channel: str) -> bool:
        """Subscribe a connection to a channel. Returns False for unknown connections or channels.

        Whether the user may read a conversation is checked by the caller.
        """
        client = self._connections.get(conn_id)
        if client is None or not is_valid_channel(channel):
            return False

        client.subscriptions.add(channel)
        self._channels[channel].add(conn_id)
        logger.debug("ws_subscribed", conn_id=conn_id, channel=channel)
        return True

    async def unsubscribe(self, conn_id: str, channel: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False

        client.subscriptions.discard(channel)
        members = self._channels.get(channel)
        if members is not None:
            members.discard(conn_id)
            if not members:
                del self._channels[channel]
        return True

    async def _send(self, conn_ids: list[str], payload: str) -> int:
        sent = 0
        failed: list[str] = []
        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None:
                continue
            try:
                await client.websocket.send_text(payload)
                client.messages_sent += 1
                sent += 1
            except Exception:
                failed.append(conn_id)

        for conn_id in failed:
            await self.disconnect(conn_id)
        return sent

    async def broadcast_to_channel(self, channel: str, message: dict[str, Any]) -> int:
        """Send to every subscriber of ``channel``. Returns the number reached."""
        conn_ids = list(self._channels.get(channel, ()))
        if not conn_ids:
            return 0
        return await self._send(conn_ids, json.dumps({"channel": channel, "data": message}))

    async def send_to_user(self, user_id: str, channel: str, message: dict[str, Any]) -> int:
        """Send to the user's connections that subscribed to ``channel``."""
        conn_ids = [
            conn_id
            for conn_id in self._user_connections.get(user_id, ())
            if channel in self._connections[conn_id].subscriptions
        ]
        if not conn_ids:
            return 0
        return await self._send(conn_ids, json.dumps({"channel": channel, "data": message}))

    async def send_to_user_direct(self, user_id: str, message: dict[str, Any]) -> int:
        """Send a personal event to all of the user's connections, subscribed or not."""
        conn_ids = list(self._user_connections.get(user_id, ()))
        if not conn_ids:
            return 0
        return await self._send(conn_ids, json.dumps(message))

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "channels": {ch: len(conns) for ch, conns in self._channels.items() if conns},
        }


# Global singleton
manager = ConnectionManager()
