"""Bridges Redis pub/sub to WebSocket clients.

Services publish after commit on two channel families:

- ``ws:user:{user_id}``: personal events (notifications), sent to every
  connection the user holds
- ``ws:conversation:{id}``: committed messages, sent to subscribers of
  ``conversation:{id}``
"""

import asyncio
import json
from typing import Any

import redis.asyncio as aioredis
import structlog

from matchpoint.ws.manager import CONVERSATION_PREFIX, ConnectionManager
from matchpoint.ws.manager import manager as default_manager

logger = structlog.get_logger()

USER_PATTERN = "ws:user:*"
CONVERSATION_PATTERN = "ws:conversation:*"


def _decode(value: Any) -> Any:
    return value.decode() if isinstance(value, bytes) else value


class PubSubBridge:
    """Pattern-subscribes to the realtime channels and fans messages out."""

    def __init__(self, redis_client: aioredis.Redis, manager: ConnectionManager | None = None) -> None:
        self.redis = redis_client
        self.manager = manager or default_manager
        self._running = False

    async def dispatch(self, redis_channel: str, payload: dict[str, Any]) -> int:
        """Route one decoded pub/sub message. Returns the number of sockets reached."""
        if redis_channel.startswith("ws:user:"):
            user_id = redis_channel[len("ws:user:"):]
            if not user_id:
                logger.warning("pubsub_invalid_user_id", channel=redis_channel)
                return 0
            return await self.manager.send_to_user_direct(user_id, {
                "type": payload.get("event", "notification"),
                "payload": payload.get("data", payload),
            })

        if redis_channel.startswith("ws:conversation:"):
            conversation_id = redis_channel[len("ws:conversation:"):]
            if not conversation_id.isdigit():
                logger.warning("pubsub_invalid_conversation_id", channel=redis_channel)
                return 0
            return await self.manager.broadcast_to_channel(f"{CONVERSATION_PREFIX}{conversation_id}", {
                "type": payload.get("event", "message"),
                "payload": payload.get("data", payload),
            })

        return 0

    async def start(self) -> None:
        """Listen until :meth:`stop` is called or the task is cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(USER_PATTERN, CONVERSATION_PATTERN)
        logger.info("pubsub_bridge_started", patterns=[USER_PATTERN, CONVERSATION_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None or message.get("type") != "pmessage":
                    continue

                redis_channel = _decode(message.get("channel", ""))
                try:
                    payload = json.loads(_decode(message.get("data", b"")))
                except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
                    logger.warning("pubsub_invalid_message", channel=redis_channel)
                    continue
                if not isinstance(payload, dict):
                    logger.warning("pubsub_invalid_message", channel=redis_channel)
                    continue

                sent = await self.dispatch(redis_channel, payload)
                if sent > 0:
                    logger.debug("pubsub_delivered", channel=redis_channel, recipients=sent)

        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        self._running = False
