"""Redis client for realtime fan-out of notifications and messages.

Realtime delivery is optional. With ``realtime_enabled`` off no client is
created, ``realtime_client()`` returns None and every publish is skipped.
The database stays the source of truth either way.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis

from matchpoint.config import get_settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis | None:
    """Create the shared client, or do nothing when realtime delivery is off."""
    global _client  # noqa: PLW0603
    settings = get_settings()
    if not settings.realtime_enabled:
        logger.info("Realtime delivery disabled; Redis not initialized")
        return None
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.redis_max_connections,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """The shared client. Raises when it was never initialized."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() with realtime delivery enabled."
        raise RuntimeError(msg)
    return _client


def realtime_client() -> redis.Redis | None:
    """The client publishers should use, or None when pushes are skipped."""
    if not get_settings().realtime_enabled:
        return None
    return _client


async def publish_json(client: Any | None, channel: str, payload: dict[str, Any]) -> bool:
    """Best-effort publish. Returns False when skipped or when Redis failed."""
    if client is None:
        return False
    try:
        await client.publish(channel, json.dumps(payload))
    except Exception:
        logger.warning("Failed to publish on %s", channel, exc_info=True)
        return False
    return True
