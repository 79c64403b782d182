"""Connection requests.

A request is directional (user_id asked connected_user_id) and is answered
once by the recipient.

Revision ID: 004_connections
Revises: 003_messaging_notifications
Create Date: 2026-10-20
"""

from collections.abc import Sequence

from alembic import op

revision: str = "004_connections"
down_revision: str | None = "003_messaging_notifications"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS connections (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            connected_user_id VARCHAR(64) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_connections_pair UNIQUE (user_id, connected_user_id),
            CONSTRAINT ck_connections_not_self CHECK (user_id <> connected_user_id),
            CONSTRAINT ck_connections_status CHECK (status IN ('pending', 'connected', 'rejected'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_connections_recipient
        ON connections(connected_user_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS connections CASCADE")
