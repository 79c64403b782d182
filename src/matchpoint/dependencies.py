"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from matchpoint.redis_client import realtime_client


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client, or None when realtime pushes are skipped."""
    yield realtime_client()
