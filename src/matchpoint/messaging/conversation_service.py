"""Conversation threads: one per unordered user pair.

Rows are stored with ``user1_id < user2_id`` under a UNIQUE constraint, and
lookups use the explicit ``(u1=A AND u2=B) OR (u1=B AND u2=A)`` predicate.
Unread counters are only ever changed by single UPDATE statements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from matchpoint.db.models import Conversation, Message, Profile
from matchpoint.db.statements import insert_ignoring_conflicts
from matchpoint.errors import NotFoundError, OperationResult, ValidationError, require_ids, service_operation
from matchpoint.matching.profiles import get_profiles

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    conversation: Conversation
    other_user_id: str
    other_user: Profile | None
    last_message: Message | None
    unread_count: int


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    low, high = sorted((user_a, user_b))
    return low, high


def pair_filter(user_a: str, user_b: str):  # noqa: ANN201
    return or_(
        and_(Conversation.user1_id == user_a, Conversation.user2_id == user_b),
        and_(Conversation.user1_id == user_b, Conversation.user2_id == user_a),
    )


def unread_column(conversation: Conversation, user_id: str):  # noqa: ANN201
    """The counter column that belongs to ``user_id`` in this conversation."""
    if user_id == conversation.user1_id:
        return Conversation.user1_unread_count
    if user_id == conversation.user2_id:
        return Conversation.user2_unread_count
    raise ValidationError("User is not a participant in this conversation")


async def load_conversation(db: AsyncSession, conversation_id: int) -> Conversation:
    result = await db.execute(
        select(Conversation)
        .where(Conversation.id == conversation_id)
        .execution_options(populate_existing=True)
    )
    conversation = result.scalar_one_or_none()
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return conversation


async def find_conversation(db: AsyncSession, user_a: str, user_b: str) -> Conversation | None:
    result = await db.execute(
        select(Conversation)
        .where(pair_filter(user_a, user_b))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_or_create_conversation(db: AsyncSession, user_a: str, user_b: str) -> Conversation:
    """Return the pair's conversation, creating or reactivating it. Does not commit."""
    if user_a == user_b:
        raise ValidationError("Cannot open a conversation with yourself")

    user1, user2 = canonical_pair(user_a, user_b)
    now = datetime.now(timezone.utc)
    created = await db.execute(
        insert_ignoring_conflicts(
            db,
            Conversation,
            ["user1_id", "user2_id"],
            user1_id=user1,
            user2_id=user2,
            last_message_time=now,
            is_active=True,
            user1_unread_count=0,
            user2_unread_count=0,
            created_at=now,
        ).returning(Conversation.id)
    )
    if created.scalar_one_or_none() is not None:
        logger.info("Created conversation for %s and %s", user1, user2)

    conversation = await find_conversation(db, user1, user2)
    if conversation is None:
        msg = "Conversation vanished after insert"
        raise NotFoundError(msg)
    if not conversation.is_active:
        conversation.is_active = True
        await db.flush()
    return conversation


async def reset_unread(db: AsyncSession, conversation: Conversation, user_id: str) -> None:
    column = unread_column(conversation, user_id)
    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values({column: 0})
        .execution_options(synchronize_session=False)
    )


@service_operation("get_or_create_conversation")
async def get_or_create_conversation(
    db: AsyncSession,
    user_id: str,
    other_user_id: str | None = None,
    conversation_id: int | None = None,
) -> OperationResult[Conversation]:
    """Open a conversation by id or by counterpart, resetting the opener's unread counter."""
    require_ids(user_id=user_id)
    if conversation_id is not None:
        conversation = await load_conversation(db, conversation_id)
        if not conversation.has_participant(user_id):
            raise ValidationError("User is not a participant in this conversation")
    elif other_user_id:
        conversation = await find_or_create_conversation(db, user_id, other_user_id)
    else:
        raise ValidationError("Either other_user_id or conversation_id is required")

    await reset_unread(db, conversation, user_id)
    await db.commit()
    return OperationResult.ok(await load_conversation(db, conversation.id))


@service_operation("mark_read")
async def mark_read(db: AsyncSession, conversation_id: int, reader_id: str) -> OperationResult[int]:
    """Flip the reader's unread messages to read and zero their counter.

    Returns the number of messages flipped; repeating the call returns 0.
    """
    require_ids(reader_id=reader_id)
    conversation = await load_conversation(db, conversation_id)
    if not conversation.has_participant(reader_id):
        raise ValidationError("User is not a participant in this conversation")

    result = await db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.receiver_id == reader_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await reset_unread(db, conversation, reader_id)
    await db.commit()
    return OperationResult.ok(result.rowcount)


async def latest_messages(db: AsyncSession, conversation_ids: list[int]) -> dict[int, Message]:
    """Newest message of each conversation, in one query."""
    if not conversation_ids:
        return {}
    ranked = (
        select(
            Message,
            func.row_number()
            .over(
                partition_by=Message.conversation_id,
                order_by=(Message.created_at.desc(), Message.id.desc()),
            )
            .label("recency"),
        )
        .where(Message.conversation_id.in_(conversation_ids))
        .subquery()
    )
    newest = aliased(Message, ranked)
    result = await db.execute(
        select(newest).where(ranked.c.recency == 1).execution_options(populate_existing=True)
    )
    return {message.conversation_id: message for message in result.scalars().all()}


@service_operation("list_conversations")
async def list_conversations(db: AsyncSession, user_id: str) -> OperationResult[list[ConversationSummary]]:
    """Active conversations, most recent activity first."""
    require_ids(user_id=user_id)
    result = await db.execute(
        select(Conversation)
        .where(
            or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id),
            Conversation.is_active.is_(True),
        )
        .order_by(Conversation.last_message_time.desc(), Conversation.id.desc())
        .execution_options(populate_existing=True)
    )
    conversations = list(result.scalars().all())
    profiles = await get_profiles(db, (c.other_user(user_id) for c in conversations))

    latest = await latest_messages(db, [c.id for c in conversations])

    summaries = []
    for conversation in conversations:
        other = conversation.other_user(user_id)
        summaries.append(ConversationSummary(
            conversation=conversation,
            other_user_id=other,
            other_user=profiles.get(other),
            last_message=latest.get(conversation.id),
            unread_count=conversation.unread_count_for(user_id),
        ))
    return OperationResult.ok(summaries)


@service_operation("deactivate_conversation")
async def deactivate_conversation(db: AsyncSession, conversation_id: int, user_id: str) -> OperationResult[bool]:
    """Soft-delete: hide the thread until either side opens it again."""
    require_ids(user_id=user_id)
    conversation = await load_conversation(db, conversation_id)
    if not conversation.has_participant(user_id):
        raise ValidationError("User is not a participant in this conversation")
    conversation.is_active = False
    await db.commit()
    return OperationResult.ok(True)


@service_operation("get_counterpart")
async def get_counterpart(db: AsyncSession, conversation_id: int, user_id: str) -> OperationResult[str]:
    """The other participant of a conversation the user belongs to."""
    require_ids(user_id=user_id)
    conversation = await load_conversation(db, conversation_id)
    if not conversation.has_participant(user_id):
        raise ValidationError("User is not a participant in this conversation")
    return OperationResult.ok(conversation.other_user(user_id))
