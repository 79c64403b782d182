"""Skip registry: directional, reversible "not interested" edges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.db.models import UserSkip
from matchpoint.db.statements import insert_ignoring_conflicts
from matchpoint.errors import OperationResult, ValidationError, require_ids, service_operation
from matchpoint.matching.profiles import calculate_age, get_profiles

logger = logging.getLogger(__name__)


@dataclass
class SkippedUser:
    """A skipped user as shown on the "skipped" screen.

    Profile fields are None when the identity provider has no profile row.
    """

    id: str
    skipped_at: datetime | None
    username: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    age: int | None = None
    gender: str | None = None
    interests: list[str] = field(default_factory=list)
    is_premium: bool = False
    online_status: str | None = None


@service_operation("skip_user")
async def skip_user(db: AsyncSession, actor_id: str, target_id: str) -> OperationResult[bool]:
    """Record a skip. Skipping twice leaves exactly one edge."""
    require_ids(actor_id=actor_id, target_id=target_id)
    if actor_id == target_id:
        raise ValidationError("Cannot skip yourself")

    await db.execute(
        insert_ignoring_conflicts(
            db,
            UserSkip,
            ["user_id", "skipped_user_id"],
            user_id=actor_id,
            skipped_user_id=target_id,
            created_at=datetime.now(timezone.utc),
        )
    )
    await db.commit()
    return OperationResult.ok(True)


@service_operation("undo_skip")
async def undo_skip(db: AsyncSession, actor_id: str, target_id: str) -> OperationResult[bool]:
    """Remove a skip. Undoing an absent skip is still a success."""
    require_ids(actor_id=actor_id, target_id=target_id)
    result = await db.execute(
        delete(UserSkip).where(UserSkip.user_id == actor_id, UserSkip.skipped_user_id == target_id)
    )
    await db.commit()
    if result.rowcount:
        logger.info("User %s undid skip of %s", actor_id, target_id)
    return OperationResult.ok(True)


async def get_skipped_user_ids(db: AsyncSession, user_id: str) -> set[str]:
    """Ids the user has skipped, for excluding them from discovery."""
    result = await db.execute(select(UserSkip.skipped_user_id).where(UserSkip.user_id == user_id))
    return set(result.scalars().all())


@service_operation("get_skipped_users")
async def get_skipped_users(db: AsyncSession, user_id: str, limit: int = 10) -> OperationResult[list[SkippedUser]]:
    """Skipped users with their profile data, most recently skipped first."""
    require_ids(user_id=user_id)
    result = await db.execute(
        select(UserSkip)
        .where(UserSkip.user_id == user_id)
        .order_by(UserSkip.created_at.desc())
        .limit(limit)
    )
    skips = list(result.scalars().all())
    profiles = await get_profiles(db, (s.skipped_user_id for s in skips))

    skipped = []
    for skip in skips:
        entry = SkippedUser(id=skip.skipped_user_id, skipped_at=skip.created_at)
        profile = profiles.get(skip.skipped_user_id)
        if profile is not None:
            entry.username = profile.username
            entry.avatar_url = profile.avatar_url
            entry.bio = profile.bio
            entry.age = calculate_age(profile.birth_date)
            entry.gender = profile.gender
            entry.interests = list(profile.interests or [])
            entry.is_premium = bool(profile.is_premium)
            entry.online_status = profile.online_status
        skipped.append(entry)
    return OperationResult.ok(skipped)
