"""Likes, matches and skips.

Matches are stored with user1_id < user2_id so the UNIQUE constraint covers
the unordered pair.

Revision ID: 002_matching_tables
Revises: 001_points_ledger
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_matching_tables"
down_revision: str | None = "001_points_ledger"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Likes ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_likes (
            user_id VARCHAR(64) NOT NULL,
            liked_user_id VARCHAR(64) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            PRIMARY KEY (user_id, liked_user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_likes_liked
        ON user_likes(liked_user_id)
    """)

    # --- Matches ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_matches (
            id BIGSERIAL PRIMARY KEY,
            user1_id VARCHAR(64) NOT NULL,
            user2_id VARCHAR(64) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_user_matches_pair UNIQUE (user1_id, user2_id),
            CONSTRAINT ck_user_matches_canonical CHECK (user1_id < user2_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_matches_user2
        ON user_matches(user2_id)
    """)

    # --- Skips ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_skips (
            user_id VARCHAR(64) NOT NULL,
            skipped_user_id VARCHAR(64) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            PRIMARY KEY (user_id, skipped_user_id)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_skips CASCADE")
    op.execute("DROP TABLE IF EXISTS user_matches CASCADE")
    op.execute("DROP TABLE IF EXISTS user_likes CASCADE")
