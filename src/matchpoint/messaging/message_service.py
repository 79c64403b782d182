"""Point-gated direct messages.

A send is one transaction: reserve the cost with an atomic conditional
decrement, insert the message, bump ``last_message_time`` and the receiver's
unread counter, and queue the receiver's notification. Any failure rolls all
of it back, so a message is never stored unpaid and points are never spent
without a message.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.config import get_settings
from matchpoint.db.models import Conversation, Message
from matchpoint.errors import OperationResult, ValidationError, require_ids, service_operation
from matchpoint.matching.profiles import get_username
from matchpoint.messaging.conversation_service import load_conversation, unread_column
from matchpoint.messaging.push import publish_message
from matchpoint.notifications.push import push_notification_to_user
from matchpoint.notifications.service import create_notification
from matchpoint.points import ledger

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50


def message_cost(is_highlighted: bool) -> int:
    settings = get_settings()
    return settings.highlight_message_cost if is_highlighted else settings.regular_message_cost


def _preview(content: str) -> str:
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[:PREVIEW_LENGTH] + "..."


async def _find_by_token(
    db: AsyncSession, sender_id: str, conversation_id: int, client_token: str,
) -> Message | None:
    """The sender's earlier message with this token, if it went to the same conversation."""
    result = await db.execute(
        select(Message).where(Message.sender_id == sender_id, Message.client_token == client_token)
    )
    existing = result.scalar_one_or_none()
    if existing is not None and existing.conversation_id != conversation_id:
        raise ValidationError("client_token was already used in another conversation")
    return existing


@service_operation("send_message")
async def send_message(
    db: AsyncSession,
    sender_id: str,
    receiver_id: str,
    conversation_id: int,
    content: str,
    is_highlighted: bool = False,
    *,
    is_premium: bool = False,
    client_token: str | None = None,
    redis: Any | None = None,
) -> OperationResult[Message]:
    """Send a message, charging non-premium senders.

    A repeated ``client_token`` from the same sender returns the original
    message without inserting or charging again. Reusing a token in a
    different conversation is a validation error.
    """
    require_ids(sender_id=sender_id, receiver_id=receiver_id, conversation_id=conversation_id)
    if content is None or not content.strip():
        raise ValidationError("Message content cannot be empty")
    if sender_id == receiver_id:
        raise ValidationError("Cannot send a message to yourself")

    conversation = await load_conversation(db, conversation_id)
    if {sender_id, receiver_id} != {conversation.user1_id, conversation.user2_id}:
        raise ValidationError("Sender and receiver must be the conversation's participants")

    if client_token:
        existing = await _find_by_token(db, sender_id, conversation_id, client_token)
        if existing is not None:
            logger.info("Duplicate send %s from %s ignored", client_token, sender_id)
            return OperationResult.ok(existing)

    cost = message_cost(is_highlighted)
    if ledger.needs_point_consumption(is_premium):
        consumed = await ledger.consume_points(
            db, sender_id, cost, ledger.MESSAGE, reference_id=str(conversation_id),
        )
        if not consumed:
            await db.rollback()
            return OperationResult.insufficient(cost, await ledger.peek_balance(db, sender_id))

    now = datetime.now(timezone.utc)
    message = Message(
        sender_id=sender_id,
        receiver_id=receiver_id,
        conversation_id=conversation_id,
        content=content,
        is_highlighted=is_highlighted,
        is_read=False,
        client_token=client_token,
        created_at=now,
        updated_at=now,
    )
    db.add(message)
    try:
        await db.flush()
    except IntegrityError:
        # Concurrent retry with the same token won the insert
        await db.rollback()
        if client_token:
            existing = await _find_by_token(db, sender_id, conversation_id, client_token)
            if existing is not None:
                return OperationResult.ok(existing)
        raise

    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values({
            Conversation.last_message_time: now,
            Conversation.is_active: True,
            unread_column(conversation, receiver_id): unread_column(conversation, receiver_id) + 1,
        })
        .execution_options(synchronize_session=False)
    )

    sender_name = await get_username(db, sender_id)
    notification = await create_notification(
        db,
        receiver_id,
        "message",
        f"New message from {sender_name}",
        _preview(content),
        {"conversation_id": conversation_id, "message_id": message.id, "is_highlighted": is_highlighted},
        "high" if is_highlighted else "medium",
        link=f"/messages/{conversation_id}",
        sender_id=sender_id,
        event_id=f"message:{message.id}",
    )

    await db.commit()
    await publish_message(redis, message)
    await push_notification_to_user(redis, notification)
    return OperationResult.ok(message)


@service_operation("get_messages")
async def get_messages(
    db: AsyncSession,
    conversation_id: int,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> OperationResult[list[Message]]:
    """Message history, newest first."""
    require_ids(user_id=user_id)
    conversation = await load_conversation(db, conversation_id)
    if not conversation.has_participant(user_id):
        raise ValidationError("User is not a participant in this conversation")

    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return OperationResult.ok(list(result.scalars().all()))
