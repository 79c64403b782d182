"""Public points operations. Each one is its own committed unit of work."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.db.models import PointsAccount, PointTransaction
from matchpoint.errors import OperationResult, require_ids, service_operation
from matchpoint.points import ledger


@service_operation("get_balance")
async def get_balance(db: AsyncSession, user_id: str) -> OperationResult[PointsAccount]:
    require_ids(user_id=user_id)
    account = await ledger.get_or_create_account(db, user_id)
    await db.commit()
    return OperationResult.ok(account)


@service_operation("has_enough_points")
async def has_enough_points(db: AsyncSession, user_id: str, amount: int) -> OperationResult[bool]:
    require_ids(user_id=user_id)
    return OperationResult.ok(await ledger.has_enough_points(db, user_id, amount))


@service_operation("consume_points")
async def consume(
    db: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    reference_id: str | None = None,
    description: str | None = None,
) -> OperationResult[int]:
    """Spend points; returns the new balance or an InsufficientPoints failure."""
    require_ids(user_id=user_id)
    if not await ledger.consume_points(db, user_id, amount, transaction_type, reference_id, description):
        await db.rollback()
        return OperationResult.insufficient(amount, await ledger.peek_balance(db, user_id))
    await db.commit()
    return OperationResult.ok(await ledger.peek_balance(db, user_id))


@service_operation("add_points")
async def add(
    db: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    reference_id: str | None = None,
    description: str | None = None,
) -> OperationResult[PointTransaction]:
    require_ids(user_id=user_id)
    entry = await ledger.add_points(db, user_id, amount, transaction_type, reference_id, description)
    await db.commit()
    return OperationResult.ok(entry)


@service_operation("get_transactions")
async def get_transactions(db: AsyncSession, user_id: str, limit: int = 10) -> OperationResult[list[PointTransaction]]:
    require_ids(user_id=user_id)
    return OperationResult.ok(await ledger.get_transactions(db, user_id, limit))
