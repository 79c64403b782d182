"""Pydantic schemas for points endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BalanceResponse(BaseModel):
    balance: int
    lifetime_earned: int
    last_updated: datetime | None = None


class TransactionResponse(BaseModel):
    id: int
    amount: int
    transaction_type: str
    reference_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
