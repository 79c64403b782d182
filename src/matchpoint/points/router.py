"""Points API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.database import get_session
from matchpoint.identity.dependencies import get_caller
from matchpoint.identity.jwt import Caller
from matchpoint.points import service
from matchpoint.points.schemas import BalanceResponse, TransactionListResponse, TransactionResponse
from matchpoint.responses import unwrap

router = APIRouter(prefix="/api/v1/points", tags=["Points"])


@router.get("", response_model=BalanceResponse)
async def get_balance(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Caller's balance; the account is opened with the starter balance on first use."""
    account = unwrap(await service.get_balance(db, caller.user_id))
    return BalanceResponse(
        balance=account.balance,
        lifetime_earned=account.lifetime_earned,
        last_updated=account.last_updated,
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(10, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    entries = unwrap(await service.get_transactions(db, caller.user_id, limit))
    return TransactionListResponse(
        transactions=[
            TransactionResponse(
                id=t.id,
                amount=t.amount,
                transaction_type=t.transaction_type,
                reference_id=t.reference_id,
                description=t.description,
                created_at=t.created_at,
            )
            for t in entries
        ],
    )
