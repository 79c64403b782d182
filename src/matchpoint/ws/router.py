"""WebSocket endpoint with token authentication and channel multiplexing."""

import asyncio
import json
import uuid

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.config import get_settings
from matchpoint.database import session_scope
from matchpoint.db.models import Conversation
from matchpoint.identity.jwt import verify_identity_token
from matchpoint.ws.manager import conversation_id_from_channel, manager

logger = structlog.get_logger()

router = APIRouter()


async def can_join_channel(db: AsyncSession, user_id: str, channel: str) -> bool:
    """Conversation channels are readable by the two participants only."""
    conversation_id = conversation_id_from_channel(channel)
    if conversation_id is None:
        return True
    result = await db.execute(
        select(Conversation.user1_id, Conversation.user2_id).where(Conversation.id == conversation_id)
    )
    row = result.one_or_none()
    return row is not None and user_id in row


async def authorize_subscription(user_id: str, channel: str) -> bool:
    async with session_scope() as db:
        return await can_join_channel(db, user_id, channel)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Single WebSocket endpoint.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "channel": "conversation:42"}
            {"action": "unsubscribe", "channel": "conversation:42"}
            {"action": "ping"}

        Server -> Client:
            {"channel": "conversation:42", "data": {"type": "message", "payload": {...}}}
            {"type": "notification", "payload": {...}}
            {"type": "pong"} / {"type": "heartbeat"}
            {"type": "error", "message": "..."}
            {"type": "subscribed", "channel": "..."} / {"type": "unsubscribed", "channel": "..."}
    """
    try:
        caller = verify_identity_token(token)
    except Exception as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    conn_id = str(uuid.uuid4())
    if not await manager.connect(websocket, conn_id, caller.user_id):
        return

    heartbeat = get_settings().ws_heartbeat_interval_seconds
    try:
        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=heartbeat)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
                continue

            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            action = msg.get("action")
            channel = str(msg.get("channel", ""))

            if action == "subscribe":
                if not await authorize_subscription(caller.user_id, channel):
                    await websocket.send_json({"type": "error", "message": f"Not allowed: {channel}"})
                elif await manager.subscribe(conn_id, channel):
                    await websocket.send_json({"type": "subscribed", "channel": channel})
                else:
                    await websocket.send_json({"type": "error", "message": f"Invalid channel: {channel}"})

            elif action == "unsubscribe":
                await manager.unsubscribe(conn_id, channel)
                await websocket.send_json({"type": "unsubscribed", "channel": channel})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
