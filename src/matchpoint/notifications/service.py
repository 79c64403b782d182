"""Notification creation, preferences and storage-backed reads.

Notifications are:
1. Persisted in the database (append-only; ``event_id`` deduplicates producers)
2. Pushed to the user via WebSocket (Redis pub/sub -> WS bridge) after commit,
   unless the recipient muted that type

Types: like, match, message, connection_request, connection_response, system
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.db.models import Notification, NotificationPreference
from matchpoint.db.statements import insert_ignoring_conflicts
from matchpoint.errors import NotFoundError, OperationResult, ValidationError, require_ids, service_operation
from matchpoint.notifications.feed import PRIORITY_ORDER
from matchpoint.notifications.push import push_notification_to_user

logger = logging.getLogger(__name__)

VALID_TYPES = {"like", "match", "message", "connection_request", "connection_response", "system"}
VALID_PRIORITIES = ("high", "medium", "low")

# Feed order: unread first, then high > medium > low, then newest
PRIORITY_RANK = case(PRIORITY_ORDER, value=Notification.priority, else_=PRIORITY_ORDER["medium"])
FEED_ORDER = (
    Notification.is_read.asc(),
    PRIORITY_RANK.asc(),
    Notification.created_at.desc(),
    Notification.id.desc(),
)

DEFAULT_PREFERENCES = {
    "in_app": True,
    "likes": True,
    "matches": True,
    "messages": True,
}

# Map notification type -> preference key
PREFERENCE_MAP = {
    "like": "likes",
    "match": "matches",
    "connection_request": "matches",
    "connection_response": "matches",
    "message": "messages",
}


@dataclass
class NotificationDraft:
    """One entry of a batched insert."""

    user_id: str
    type: str
    title: str
    message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: str = "medium"
    link: str | None = None
    sender_id: str | None = None


def _validate(user_id: str | None, type_: str, priority: str) -> None:
    if not user_id:
        raise ValidationError("Notification recipient is required")
    if type_ not in VALID_TYPES:
        raise ValidationError(f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}")
    if priority not in VALID_PRIORITIES:
        raise ValidationError(f"Invalid notification priority: {priority}")


def should_deliver(preferences: dict[str, Any], type_: str) -> bool:
    """Check if a stored notification should be pushed based on user preferences."""
    if not preferences.get("in_app", True):
        return False

    pref_key = PREFERENCE_MAP.get(type_)
    if pref_key is None:
        return True

    return bool(preferences.get(pref_key, DEFAULT_PREFERENCES.get(pref_key, True)))


async def get_user_notification_preferences(db: AsyncSession, user_id: str) -> dict[str, Any]:
    """Get user's notification preferences, falling back to defaults."""
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    merged = dict(DEFAULT_PREFERENCES)
    if row is not None and row.preferences:
        merged.update(row.preferences)
    return merged


async def store_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str | None = None,
    metadata: dict[str, Any] | None = None,
    priority: str = "medium",
    *,
    link: str | None = None,
    sender_id: str | None = None,
    event_id: str | None = None,
) -> Notification | None:
    """Insert a notification inside the caller's transaction.

    Preferences never suppress the row. Returns None only when a
    notification with the same ``event_id`` already exists.
    """
    _validate(user_id, type_, priority)

    values = {
        "user_id": user_id,
        "type": type_,
        "title": title,
        "message": message,
        "priority": priority,
        "is_read": False,
        "link": link,
        "sender_id": sender_id,
        "event_id": event_id,
        "notification_metadata": metadata or {},
        "created_at": datetime.now(timezone.utc),
    }

    if event_id is None:
        notification = Notification(**values)
        db.add(notification)
        await db.flush()
        return notification

    inserted = await db.execute(
        insert_ignoring_conflicts(db, Notification, ["event_id"], **values).returning(Notification.id)
    )
    notification_id = inserted.scalar_one_or_none()
    if notification_id is None:
        logger.debug("Duplicate notification event %s ignored", event_id)
        return None
    return await db.get(Notification, notification_id)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str | None = None,
    metadata: dict[str, Any] | None = None,
    priority: str = "medium",
    *,
    link: str | None = None,
    sender_id: str | None = None,
    event_id: str | None = None,
) -> Notification | None:
    """Store a notification and return the row to push after commit.

    The row is always stored (unless ``event_id`` is a duplicate). None is
    returned when there is nothing to push: a duplicate event, or a
    recipient who muted this type.
    """
    notification = await store_notification(
        db, user_id, type_, title, message, metadata, priority,
        link=link, sender_id=sender_id, event_id=event_id,
    )
    if notification is None:
        return None
    if not should_deliver(await get_user_notification_preferences(db, user_id), type_):
        logger.debug("Notification %s stored without push: %s muted %s", notification.id, user_id, type_)
        return None
    return notification


async def _pushable(db: AsyncSession, notifications: list[Notification]) -> list[Notification]:
    preferences: dict[str, dict[str, Any]] = {}
    pushable = []
    for n in notifications:
        if n.user_id not in preferences:
            preferences[n.user_id] = await get_user_notification_preferences(db, n.user_id)
        if should_deliver(preferences[n.user_id], n.type):
            pushable.append(n)
    return pushable


@service_operation("batch_create_notifications")
async def batch_create_notifications(
    db: AsyncSession,
    drafts: list[NotificationDraft],
    *,
    redis: Any | None = None,
) -> OperationResult[list[Notification]]:
    """Store several notifications with one INSERT, then push the deliverable ones."""
    if not drafts:
        raise ValidationError("No notifications to create")
    for draft in drafts:
        _validate(draft.user_id, draft.type, draft.priority)

    now = datetime.now(timezone.utc)
    result = await db.scalars(
        insert(Notification).returning(Notification, sort_by_parameter_order=True),
        [
            {
                "user_id": d.user_id,
                "type": d.type,
                "title": d.title,
                "message": d.message,
                "priority": d.priority,
                "is_read": False,
                "link": d.link,
                "sender_id": d.sender_id,
                "notification_metadata": d.metadata or {},
                "created_at": now,
            }
            for d in drafts
        ],
    )
    notifications = list(result.all())
    pushable = await _pushable(db, notifications)
    await db.commit()
    for notification in pushable:
        await push_notification_to_user(redis, notification)
    logger.info("Created %d notifications in one batch", len(notifications))
    return OperationResult.ok(notifications)


@service_operation("create_notification")
async def dispatch_notification(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str | None = None,
    metadata: dict[str, Any] | None = None,
    priority: str = "medium",
    *,
    link: str | None = None,
    sender_id: str | None = None,
    event_id: str | None = None,
    redis: Any | None = None,
) -> OperationResult[Notification | None]:
    """Standalone notification: insert, commit, then push unless muted.

    Returns the stored row, or None for a duplicate ``event_id``.
    """
    require_ids(user_id=user_id)
    notification = await store_notification(
        db, user_id, type_, title, message, metadata, priority,
        link=link, sender_id=sender_id, event_id=event_id,
    )
    pushable = await _pushable(db, [notification]) if notification is not None else []
    await db.commit()
    for row in pushable:
        await push_notification_to_user(redis, row)
    return OperationResult.ok(notification)


@service_operation("get_notifications")
async def get_notifications(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
    type_: str | None = None,
) -> OperationResult[tuple[list[Notification], int]]:
    """User's notifications in feed order (paginated), optionally one type only."""
    require_ids(user_id=user_id)
    offset = (page - 1) * per_page
    filters = [Notification.user_id == user_id]
    if type_ is not None:
        filters.append(Notification.type == type_)

    total_result = await db.execute(select(func.count()).select_from(Notification).where(*filters))
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(*filters)
        .order_by(*FEED_ORDER)
        .offset(offset)
        .limit(per_page)
        .execution_options(populate_existing=True)
    )
    return OperationResult.ok((list(result.scalars().all()), total))


@service_operation("get_unread_count")
async def get_unread_count(db: AsyncSession, user_id: str) -> OperationResult[int]:
    require_ids(user_id=user_id)
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return OperationResult.ok(result.scalar_one())


@service_operation("mark_notification_read")
async def mark_as_read(db: AsyncSession, user_id: str, notification_id: int) -> OperationResult[bool]:
    """Mark a single notification as read."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Notification not found")
    await db.commit()
    return OperationResult.ok(True)


@service_operation("mark_all_notifications_read")
async def mark_all_as_read(db: AsyncSession, user_id: str) -> OperationResult[int]:
    """Mark all unread notifications as read. Returns count updated."""
    require_ids(user_id=user_id)
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return OperationResult.ok(result.rowcount)


@service_operation("delete_notification")
async def delete_notification(db: AsyncSession, user_id: str, notification_id: int) -> OperationResult[bool]:
    result = await db.execute(
        delete(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Notification not found")
    await db.commit()
    return OperationResult.ok(True)


@service_operation("get_notification_preferences")
async def get_preferences(db: AsyncSession, user_id: str) -> OperationResult[dict[str, Any]]:
    require_ids(user_id=user_id)
    return OperationResult.ok(await get_user_notification_preferences(db, user_id))


@service_operation("update_notification_preferences")
async def update_preferences(
    db: AsyncSession,
    user_id: str,
    changes: dict[str, bool],
) -> OperationResult[dict[str, Any]]:
    """Merge ``changes`` into the stored toggles. Unknown keys are rejected."""
    require_ids(user_id=user_id)
    unknown = set(changes) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise ValidationError(f"Unknown notification preferences: {', '.join(sorted(unknown))}")

    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(NotificationPreference).where(NotificationPreference.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = NotificationPreference(user_id=user_id, preferences=dict(changes), updated_at=now)
        db.add(row)
    else:
        row.preferences = {**(row.preferences or {}), **changes}
        row.updated_at = now
    await db.commit()
    return OperationResult.ok(await get_user_notification_preferences(db, user_id))
