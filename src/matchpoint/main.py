"""FastAPI application factory."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from matchpoint.config import get_settings
from matchpoint.database import close_db, get_engine, init_db
from matchpoint.db.schema_check import verify_schema
from matchpoint.health.router import router as health_router
from matchpoint.matching.router import router as matching_router
from matchpoint.messaging.router import router as messaging_router
from matchpoint.middleware import setup_middleware
from matchpoint.notifications.router import router as notifications_router
from matchpoint.points.router import router as points_router
from matchpoint.redis_client import close_redis, init_redis
from matchpoint.ws.bridge import PubSubBridge
from matchpoint.ws.manager import manager
from matchpoint.ws.router import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle. Refuses to start against an unmigrated database."""
    settings = get_settings()
    await init_db(settings.database_url)
    try:
        await verify_schema(get_engine())
    except Exception:
        await close_db()
        raise

    bridge: PubSubBridge | None = None
    bridge_task: asyncio.Task[None] | None = None
    client = await init_redis()
    if client is not None:
        manager.max_connections_per_user = settings.ws_max_connections_per_user
        bridge = PubSubBridge(client, manager)
        bridge_task = asyncio.create_task(bridge.start())

    logger.info("matchpoint_started", environment=settings.environment, realtime=settings.realtime_enabled)
    yield

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await bridge_task
        await close_redis()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Matchpoint API",
        description="Points-gated likes, matches, messaging and notifications",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(points_router)
    app.include_router(matching_router)
    app.include_router(messaging_router)
    app.include_router(notifications_router)
    app.include_router(ws_router)

    return app


app = create_app()
