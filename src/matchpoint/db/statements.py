"""Dialect-aware statement helpers.

Idempotent inserts use ``INSERT ... ON CONFLICT DO NOTHING``, which both
PostgreSQL and SQLite support through their dialect-specific ``insert``
constructs.
"""

from __future__ import annotations

import hashlib
from typing import Any

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


def insert_ignoring_conflicts(db: AsyncSession, model: type[Any], index_elements: list[str], **values: Any) -> Any:
    """Build an INSERT that silently skips rows violating ``index_elements``.

    Execute it with a ``.returning(...)`` clause and read
    ``scalar_one_or_none()``: None means the row already existed.
    """
    name = dialect_name(db)
    if name == "postgresql":
        stmt = pg_insert(model)
    elif name == "sqlite":
        stmt = sqlite_insert(model)
    else:
        msg = f"Unsupported database dialect: {name}"
        raise RuntimeError(msg)
    return stmt.values(**values).on_conflict_do_nothing(index_elements=index_elements)


def pair_lock_key(user_a: str, user_b: str) -> int:
    """Stable signed 64-bit key for an unordered user pair."""
    low, high = sorted((user_a, user_b))
    digest = hashlib.blake2b(f"{low}\x00{high}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def lock_pair(db: AsyncSession, user_a: str, user_b: str) -> None:
    """Serialize concurrent writers on one unordered pair until the transaction ends.

    PostgreSQL takes a transaction-scoped advisory lock. SQLite already
    serializes writers at the database level, so nothing is needed there.
    """
    if dialect_name(db) != "postgresql":
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(:key)"),
        {"key": pair_lock_key(user_a, user_b)},
    )
