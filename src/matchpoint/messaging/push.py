"""Publish committed messages on their conversation's Redis channel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from matchpoint.redis_client import publish_json

if TYPE_CHECKING:
    from matchpoint.db.models import Message


def conversation_channel(conversation_id: int) -> str:
    return f"ws:conversation:{conversation_id}"


def message_payload(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "senderId": message.sender_id,
        "receiverId": message.receiver_id,
        "content": message.content,
        "isHighlighted": message.is_highlighted,
        "isRead": message.is_read,
        "clientToken": message.client_token,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


async def publish_message(redis: object | None, message: Message) -> None:
    """Best-effort realtime delivery; the stored row is the source of truth."""
    await publish_json(
        redis,
        conversation_channel(message.conversation_id),
        {"event": "message", "data": message_payload(message)},
    )
