"""Points ledger primitives.

These functions run inside the caller's transaction and never commit, so the
like and message flows can compose them into a single unit of work. Balance
changes are always single conditional UPDATE statements at the store; the
balance is never read, modified and written back from Python.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.config import get_settings
from matchpoint.db.models import PointsAccount, PointTransaction
from matchpoint.db.statements import insert_ignoring_conflicts
from matchpoint.errors import ValidationError

logger = logging.getLogger(__name__)

# Transaction type tags
LIKE = "like"
MESSAGE = "message"
MATCH_BONUS = "match_bonus"
REFUND = "refund"
PURCHASE = "purchase"
LOGIN_BONUS = "login_bonus"
STREAK_BONUS = "streak_bonus"
PROFILE_VIEW = "profile_view"
FILTER_USAGE = "filter_usage"
MESSAGE_ACTIVITY = "message_activity"
REVIEW = "review"

_EARN_TEXT = {
    MATCH_BONUS: "Earned {n} points for a new match",
    REFUND: "Refunded {n} points",
    PURCHASE: "Purchased {n} points",
    LOGIN_BONUS: "Earned {n} points as a login bonus",
    STREAK_BONUS: "Earned {n} points as a streak bonus",
    MESSAGE_ACTIVITY: "Earned {n} points for messaging activity",
    MESSAGE: "Earned {n} points from messaging",
    REVIEW: "Earned {n} points for posting a review",
}
_SPEND_TEXT = {
    LIKE: "Spent {n} points on a like",
    MESSAGE: "Spent {n} points on a message",
    PROFILE_VIEW: "Spent {n} points on a profile view",
    FILTER_USAGE: "Spent {n} points on search filters",
    REVIEW: "Lost {n} points for a withdrawn review",
}


def needs_point_consumption(is_premium: bool) -> bool:
    """Premium accounts bypass every point cost."""
    return not is_premium


def default_description(transaction_type: str, amount: int, is_addition: bool) -> str:
    """Human-readable ledger text when the caller supplies none."""
    n = abs(amount)
    table = _EARN_TEXT if is_addition else _SPEND_TEXT
    template = table.get(transaction_type)
    if template is None:
        template = "Earned {n} points" if is_addition else "Spent {n} points"
    return template.format(n=n)


async def get_or_create_account(db: AsyncSession, user_id: str) -> PointsAccount:
    """Fetch the user's account, creating it with the starter balance if absent."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    created = await db.execute(
        insert_ignoring_conflicts(
            db,
            PointsAccount,
            ["user_id"],
            user_id=user_id,
            balance=settings.starter_balance,
            lifetime_earned=0,
            last_updated=now,
        ).returning(PointsAccount.user_id)
    )
    if created.scalar_one_or_none() is not None:
        logger.info("Created points account for %s with %d points", user_id, settings.starter_balance)

    result = await db.execute(
        select(PointsAccount)
        .where(PointsAccount.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def peek_balance(db: AsyncSession, user_id: str) -> int:
    """Current balance without creating the account (absent = starter balance)."""
    result = await db.execute(select(PointsAccount.balance).where(PointsAccount.user_id == user_id))
    balance = result.scalar_one_or_none()
    return get_settings().starter_balance if balance is None else balance


async def has_enough_points(db: AsyncSession, user_id: str, amount: int) -> bool:
    if amount <= 0:
        return True
    return await peek_balance(db, user_id) >= amount


async def consume_points(
    db: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    reference_id: str | None = None,
    description: str | None = None,
) -> bool:
    """Atomically decrement ``amount`` iff the balance covers it.

    Returns False, with balance and log untouched, when it does not.
    """
    if amount <= 0:
        raise ValidationError("Points to consume must be positive")

    await get_or_create_account(db, user_id)
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(PointsAccount)
        .where(PointsAccount.user_id == user_id, PointsAccount.balance >= amount)
        .values(balance=PointsAccount.balance - amount, last_updated=now)
        .returning(PointsAccount.balance)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is None:
        return False

    db.add(PointTransaction(
        user_id=user_id,
        amount=-amount,
        transaction_type=transaction_type,
        reference_id=reference_id,
        description=description or default_description(transaction_type, amount, is_addition=False),
        created_at=now,
    ))
    await db.flush()
    return True


async def add_points(
    db: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    reference_id: str | None = None,
    description: str | None = None,
) -> PointTransaction:
    """Atomically credit ``amount`` and append a positive ledger row."""
    if amount <= 0:
        raise ValidationError("Points to add must be positive")

    await get_or_create_account(db, user_id)
    now = datetime.now(timezone.utc)
    await db.execute(
        update(PointsAccount)
        .where(PointsAccount.user_id == user_id)
        .values(
            balance=PointsAccount.balance + amount,
            lifetime_earned=PointsAccount.lifetime_earned + amount,
            last_updated=now,
        )
        .execution_options(synchronize_session=False)
    )
    entry = PointTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
        reference_id=reference_id,
        description=description or default_description(transaction_type, amount, is_addition=True),
        created_at=now,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_transactions(db: AsyncSession, user_id: str, limit: int = 10) -> list[PointTransaction]:
    """Most recent ledger rows first."""
    result = await db.execute(
        select(PointTransaction)
        .where(PointTransaction.user_id == user_id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
