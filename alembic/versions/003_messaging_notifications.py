"""Conversations, messages and notifications.

Revision ID: 003_messaging_notifications
Revises: 002_matching_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "003_messaging_notifications"
down_revision: str | None = "002_matching_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Conversations ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS conversations (
            id BIGSERIAL PRIMARY KEY,
            user1_id VARCHAR(64) NOT NULL,
            user2_id VARCHAR(64) NOT NULL,
            last_message_time TIMESTAMPTZ DEFAULT NOW(),
            is_active BOOLEAN NOT NULL DEFAULT true,
            user1_unread_count INTEGER NOT NULL DEFAULT 0,
            user2_unread_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_conversations_pair UNIQUE (user1_id, user2_id),
            CONSTRAINT ck_conversations_unread CHECK (user1_unread_count >= 0 AND user2_unread_count >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_conversations_user2
        ON conversations(user2_id)
    """)

    # --- Messages ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id BIGSERIAL PRIMARY KEY,
            sender_id VARCHAR(64) NOT NULL,
            receiver_id VARCHAR(64) NOT NULL,
            conversation_id BIGINT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
            content TEXT NOT NULL,
            is_highlighted BOOLEAN NOT NULL DEFAULT false,
            is_read BOOLEAN NOT NULL DEFAULT false,
            client_token VARCHAR(64),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_messages_sender_token UNIQUE (sender_id, client_token)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_messages_conversation_created
        ON messages(conversation_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_messages_receiver_unread
        ON messages(receiver_id, is_read) WHERE is_read = false
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT,
            priority VARCHAR(8) NOT NULL DEFAULT 'medium',
            is_read BOOLEAN NOT NULL DEFAULT false,
            link VARCHAR(256),
            sender_id VARCHAR(64),
            event_id VARCHAR(128),
            metadata JSONB DEFAULT '{}',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_notifications_event_id UNIQUE (event_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_created
        ON notifications(user_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_unread
        ON notifications(user_id, is_read) WHERE is_read = false
    """)

    # --- Notification preferences ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_preferences (
            user_id VARCHAR(64) PRIMARY KEY,
            preferences JSONB NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_preferences CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS messages CASCADE")
    op.execute("DROP TABLE IF EXISTS conversations CASCADE")
