"""Fail-fast validation that the migrated schema matches the models."""

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from matchpoint.db.models import REQUIRED_TABLES


class SchemaMismatchError(RuntimeError):
    """Raised at startup when required tables are missing."""


async def missing_tables(engine: AsyncEngine) -> set[str]:
    """Return the required tables that do not exist in the database."""
    async with engine.connect() as conn:
        existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return set(REQUIRED_TABLES) - existing


async def verify_schema(engine: AsyncEngine) -> None:
    """Raise SchemaMismatchError unless every required table exists.

    Run ``alembic upgrade head`` to create the schema.
    """
    missing = await missing_tables(engine)
    if missing:
        msg = f"Database schema is missing tables: {', '.join(sorted(missing))}. Run 'alembic upgrade head'."
        raise SchemaMismatchError(msg)
