"""Read-only access to the identity provider's profile projection."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.db.models import Profile

UNKNOWN_USERNAME = "Someone"


def calculate_age(birth_date: date | None, today: date | None = None) -> int | None:
    if birth_date is None:
        return None
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


async def get_profiles(db: AsyncSession, user_ids: Iterable[str]) -> dict[str, Profile]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    result = await db.execute(select(Profile).where(Profile.id.in_(ids)))
    return {p.id: p for p in result.scalars().all()}


async def get_username(db: AsyncSession, user_id: str) -> str:
    result = await db.execute(select(Profile.username).where(Profile.id == user_id))
    return result.scalar_one_or_none() or UNKNOWN_USERNAME
