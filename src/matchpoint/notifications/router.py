"""Notification API endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.database import get_session
from matchpoint.db.models import Notification
from matchpoint.identity.dependencies import get_caller
from matchpoint.identity.jwt import Caller
from matchpoint.notifications import service
from matchpoint.notifications.schemas import (
    NotificationListResponse,
    NotificationPreferencesResponse,
    NotificationResponse,
    UnreadCountResponse,
    UpdatePreferencesRequest,
)
from matchpoint.responses import unwrap

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])

NotificationType = Literal["like", "match", "message", "connection_request", "connection_response", "system"]


def _notification(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=str(n.id),
        type=n.type,
        title=n.title,
        message=n.message,
        priority=n.priority,
        link=n.link,
        sender_id=n.sender_id,
        metadata=n.notification_metadata or {},
        timestamp=n.created_at,
        read=n.is_read,
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    type: NotificationType | None = Query(None),  # noqa: A002
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's notifications: unread first, then by priority, then newest."""
    notifications, total = unwrap(await service.get_notifications(db, caller.user_id, page, per_page, type))
    return NotificationListResponse(
        notifications=[_notification(n) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return UnreadCountResponse(count=unwrap(await service.get_unread_count(db, caller.user_id)))


@router.post("/{notification_id}/read", status_code=200)
async def mark_notification_read(
    notification_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    unwrap(await service.mark_as_read(db, caller.user_id, notification_id))
    return {"detail": "Notification marked as read"}


@router.post("/read-all", status_code=200)
async def mark_all_read(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    count = unwrap(await service.mark_all_as_read(db, caller.user_id))
    return {"detail": f"Marked {count} notifications as read"}


@router.delete("/{notification_id}", status_code=200)
async def delete_notification(
    notification_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    unwrap(await service.delete_notification(db, caller.user_id, notification_id))
    return {"detail": "Notification deleted"}


@router.get("/preferences", response_model=NotificationPreferencesResponse)
async def get_preferences(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    return NotificationPreferencesResponse(**unwrap(await service.get_preferences(db, caller.user_id)))


@router.patch("/preferences", response_model=NotificationPreferencesResponse)
async def update_preferences(
    body: UpdatePreferencesRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Change only the toggles present in the body."""
    changes = body.model_dump(exclude_none=True)
    return NotificationPreferencesResponse(**unwrap(await service.update_preferences(db, caller.user_id, changes)))
