"""Reciprocal like / match engine.

Per unordered pair {A, B} the states are NoInteraction -> PendingLike(A->B)
-> Matched. ``send_like`` runs as one transaction: the like edge, its point
charge, the match row, both notifications and both bonuses commit together
or not at all. On PostgreSQL the pair is also serialized with an advisory
lock so two users liking each other at the same instant cannot both miss
the reciprocal edge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from matchpoint.config import get_settings
from matchpoint.db.models import Notification, UserLike, UserMatch
from matchpoint.db.statements import insert_ignoring_conflicts, lock_pair
from matchpoint.errors import OperationResult, ValidationError, require_ids, service_operation
from matchpoint.matching.profiles import get_username
from matchpoint.messaging.conversation_service import canonical_pair, find_or_create_conversation
from matchpoint.notifications.push import push_notification_to_user
from matchpoint.notifications.service import create_notification
from matchpoint.points import ledger

logger = logging.getLogger(__name__)


@dataclass
class LikeOutcome:
    is_match: bool
    already_liked: bool = False
    match_id: int | None = None
    conversation_id: int | None = None


async def has_liked(db: AsyncSession, user_id: str, target_id: str) -> bool:
    result = await db.execute(
        select(exists().where(UserLike.user_id == user_id, UserLike.liked_user_id == target_id))
    )
    return bool(result.scalar())


async def get_match(db: AsyncSession, user_a: str, user_b: str) -> UserMatch | None:
    user1, user2 = canonical_pair(user_a, user_b)
    result = await db.execute(
        select(UserMatch).where(UserMatch.user1_id == user1, UserMatch.user2_id == user2)
    )
    return result.scalar_one_or_none()


async def create_match(db: AsyncSession, user_a: str, user_b: str) -> tuple[UserMatch, bool]:
    """Insert the pair's match if absent. Returns (match, created)."""
    user1, user2 = canonical_pair(user_a, user_b)
    inserted = await db.execute(
        insert_ignoring_conflicts(
            db,
            UserMatch,
            ["user1_id", "user2_id"],
            user1_id=user1,
            user2_id=user2,
            created_at=datetime.now(timezone.utc),
        ).returning(UserMatch.id)
    )
    created = inserted.scalar_one_or_none() is not None
    match = await get_match(db, user1, user2)
    if match is None:
        msg = "Match vanished after insert"
        raise RuntimeError(msg)
    return match, created


async def _notify_match(
    db: AsyncSession,
    recipient_id: str,
    partner_id: str,
    match: UserMatch,
    conversation_id: int,
) -> Notification | None:
    partner_name = await get_username(db, partner_id)
    return await create_notification(
        db,
        recipient_id,
        "match",
        "It's a match!",
        f"You matched with {partner_name}! Send them a message.",
        {
            "matching_data": {
                "matched_user_id": partner_id,
                "matched_username": partner_name,
                "match_type": "mutual",
            },
            "match_id": match.id,
            "conversation_id": conversation_id,
        },
        "high",
        link=f"/messages/{conversation_id}",
        sender_id=partner_id,
        event_id=f"match:{match.id}:{recipient_id}",
    )


async def _notify_like(db: AsyncSession, recipient_id: str, liker_id: str) -> Notification | None:
    liker_name = await get_username(db, liker_id)
    return await create_notification(
        db,
        recipient_id,
        "like",
        "You have a new like",
        f"{liker_name} liked you.",
        {
            "matching_data": {
                "matched_user_id": liker_id,
                "matched_username": liker_name,
                "match_type": "like",
            },
        },
        "medium",
        link="/matching",
        sender_id=liker_id,
        event_id=f"like:{liker_id}:{recipient_id}",
    )


@service_operation("send_like")
async def send_like(
    db: AsyncSession,
    actor_id: str,
    target_id: str,
    is_premium: bool = False,
    *,
    redis: Any | None = None,
) -> OperationResult[LikeOutcome]:
    """Record a like from ``actor_id`` to ``target_id``, promoting a reciprocal pair to a match."""
    require_ids(actor_id=actor_id, target_id=target_id)
    if actor_id == target_id:
        raise ValidationError("Cannot like yourself")

    settings = get_settings()
    await lock_pair(db, actor_id, target_id)

    if await has_liked(db, actor_id, target_id):
        await db.rollback()
        return OperationResult.ok(LikeOutcome(is_match=False, already_liked=True))

    charge = ledger.needs_point_consumption(is_premium)
    if charge and not await ledger.has_enough_points(db, actor_id, settings.like_cost):
        balance = await ledger.peek_balance(db, actor_id)
        await db.rollback()
        return OperationResult.insufficient(settings.like_cost, balance)

    inserted = await db.execute(
        insert_ignoring_conflicts(
            db,
            UserLike,
            ["user_id", "liked_user_id"],
            user_id=actor_id,
            liked_user_id=target_id,
            created_at=datetime.now(timezone.utc),
        ).returning(UserLike.user_id)
    )
    if inserted.scalar_one_or_none() is None:
        # A concurrent call recorded this like first
        await db.rollback()
        return OperationResult.ok(LikeOutcome(is_match=False, already_liked=True))

    if charge and not await ledger.consume_points(db, actor_id, settings.like_cost, ledger.LIKE, target_id):
        # Undo the edge: a like never persists unpaid
        await db.rollback()
        logger.info("Like %s -> %s rolled back: point consumption failed", actor_id, target_id)
        return OperationResult.insufficient(settings.like_cost, await ledger.peek_balance(db, actor_id))

    if not await has_liked(db, target_id, actor_id):
        notification = await _notify_like(db, target_id, actor_id)
        await db.commit()
        await push_notification_to_user(redis, notification)
        return OperationResult.ok(LikeOutcome(is_match=False))

    match, created = await create_match(db, actor_id, target_id)
    conversation = await find_or_create_conversation(db, actor_id, target_id)
    notifications: list[Notification | None] = []
    if created:
        notifications.append(await _notify_match(db, target_id, actor_id, match, conversation.id))
        notifications.append(await _notify_match(db, actor_id, target_id, match, conversation.id))
        await ledger.add_points(db, actor_id, settings.match_bonus, ledger.MATCH_BONUS, target_id)
        await ledger.add_points(db, target_id, settings.match_bonus, ledger.MATCH_BONUS, actor_id)
        logger.info("Match %s formed between %s and %s", match.id, match.user1_id, match.user2_id)

    await db.commit()
    for notification in notifications:
        await push_notification_to_user(redis, notification)
    return OperationResult.ok(LikeOutcome(is_match=True, match_id=match.id, conversation_id=conversation.id))


@service_operation("get_liked_users")
async def get_liked_users(db: AsyncSession, user_id: str, limit: int = 20) -> OperationResult[list[UserLike]]:
    """Outgoing likes, newest first."""
    require_ids(user_id=user_id)
    result = await db.execute(
        select(UserLike)
        .where(UserLike.user_id == user_id)
        .order_by(UserLike.created_at.desc())
        .limit(limit)
    )
    return OperationResult.ok(list(result.scalars().all()))


@service_operation("get_incoming_likes")
async def get_incoming_likes(db: AsyncSession, user_id: str, limit: int = 20) -> OperationResult[list[UserLike]]:
    """Likes received that the user has not reciprocated yet, newest first."""
    require_ids(user_id=user_id)
    mine = aliased(UserLike)
    reciprocal = select(mine.liked_user_id).where(mine.user_id == user_id)
    result = await db.execute(
        select(UserLike)
        .where(UserLike.liked_user_id == user_id, UserLike.user_id.not_in(reciprocal))
        .order_by(UserLike.created_at.desc())
        .limit(limit)
    )
    return OperationResult.ok(list(result.scalars().all()))


@service_operation("get_matches")
async def get_matches(db: AsyncSession, user_id: str, limit: int = 50) -> OperationResult[list[UserMatch]]:
    """The user's matches, newest first."""
    require_ids(user_id=user_id)
    result = await db.execute(
        select(UserMatch)
        .where(or_(UserMatch.user1_id == user_id, UserMatch.user2_id == user_id))
        .order_by(UserMatch.created_at.desc(), UserMatch.id.desc())
        .limit(limit)
    )
    return OperationResult.ok(list(result.scalars().all()))


async def is_matched(db: AsyncSession, user_a: str, user_b: str) -> bool:
    user1, user2 = canonical_pair(user_a, user_b)
    result = await db.execute(
        select(exists().where(and_(UserMatch.user1_id == user1, UserMatch.user2_id == user2)))
    )
    return bool(result.scalar())
