"""Push formatted notifications over Redis pub/sub for per-user WebSocket delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from matchpoint.redis_client import publish_json

if TYPE_CHECKING:
    from matchpoint.db.models import Notification


def user_channel(user_id: str) -> str:
    return f"ws:user:{user_id}"


def notification_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": str(notification.id),
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority,
        "link": notification.link,
        "senderId": notification.sender_id,
        "metadata": notification.notification_metadata or {},
        "timestamp": notification.created_at.isoformat() if notification.created_at else None,
        "read": notification.is_read,
    }


async def push_notification_to_user(redis: object | None, notification: Notification | None) -> None:
    """Publish a formatted notification to ``ws:user:{user_id}``.

    Call only after the notification row is committed. Delivery is best
    effort; the stored row is the source of truth.
    """
    if notification is None:
        return
    await publish_json(
        redis,
        user_channel(notification.user_id),
        {"event": "notification", "data": notification_payload(notification)},
    )
