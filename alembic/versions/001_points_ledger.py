"""Profiles projection and points ledger.

Creates profiles (owned by the identity provider, read-only here),
points_accounts and point_transactions.

Revision ID: 001_points_ledger
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_points_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id VARCHAR(64) PRIMARY KEY,
            username VARCHAR(64),
            avatar_url TEXT,
            bio TEXT,
            birth_date DATE,
            gender VARCHAR(16),
            interests JSONB DEFAULT '[]',
            is_premium BOOLEAN NOT NULL DEFAULT false,
            online_status VARCHAR(16)
        )
    """)

    # --- Points accounts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_accounts (
            user_id VARCHAR(64) PRIMARY KEY,
            balance INTEGER NOT NULL DEFAULT 0,
            lifetime_earned INTEGER NOT NULL DEFAULT 0,
            last_updated TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_points_accounts_balance_non_negative CHECK (balance >= 0)
        )
    """)

    # --- Point transactions (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS point_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL,
            transaction_type VARCHAR(32) NOT NULL,
            reference_id VARCHAR(128),
            description TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_point_transactions_user_created
        ON point_transactions(user_id, created_at)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS point_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS points_accounts CASCADE")
    # Don't drop profiles: the identity provider owns its rows
