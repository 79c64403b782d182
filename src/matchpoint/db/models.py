"""ORM models for the ledger, matching, messaging and notification tables.

The schema itself is owned by the Alembic migrations in ``alembic/versions``;
these models mirror it and are validated at startup by ``schema_check``.
User ids are opaque strings handed to us by the identity provider.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column

from matchpoint.db.base import Base, BigIntPK, JSONDoc

USER_ID_LENGTH = 64


# ---------------------------------------------------------------------------
# Profiles (read-only projection owned by the identity provider)
# ---------------------------------------------------------------------------


class Profile(Base):
    """Maps to the 'profiles' table. The core never writes it."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    interests: Mapped[list[str]] = mapped_column(JSONDoc, default=list)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    online_status: Mapped[str | None] = mapped_column(String(16), nullable=True)


# ---------------------------------------------------------------------------
# Points ledger
# ---------------------------------------------------------------------------


class PointsAccount(Base):
    """Per-user balance. Mutated only through atomic UPDATE statements."""

    __tablename__ = "points_accounts"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_points_accounts_balance_non_negative"),)

    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PointTransaction(Base):
    """Append-only ledger row, one per balance mutation."""

    __tablename__ = "point_transactions"
    __table_args__ = (Index("idx_point_transactions_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class UserLike(Base):
    """Directional like edge."""

    __tablename__ = "user_likes"
    __table_args__ = (Index("idx_user_likes_liked", "liked_user_id"),)

    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    liked_user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserMatch(Base):
    """Symmetric match. The pair is stored with user1_id < user2_id."""

    __tablename__ = "user_matches"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_user_matches_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_user_matches_canonical"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user1_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    user2_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def other_user(self, user_id: str) -> str:
        return self.user2_id if user_id == self.user1_id else self.user1_id


class UserSkip(Base):
    """Directional skip edge, deletable."""

    __tablename__ = "user_skips"

    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    skipped_user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Connection(Base):
    """Connection request from user_id to connected_user_id, answered by the recipient."""

    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("user_id", "connected_user_id", name="uq_connections_pair"),
        CheckConstraint("user_id <> connected_user_id", name="ck_connections_not_self"),
        CheckConstraint("status IN ('pending', 'connected', 'rejected')", name="ck_connections_status"),
        Index("idx_connections_recipient", "connected_user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    connected_user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def other_user(self, user_id: str) -> str:
        return self.connected_user_id if user_id == self.user_id else self.user_id


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class Conversation(Base):
    """Message thread for one unordered pair (stored with user1_id < user2_id)."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_conversations_pair"),
        CheckConstraint("user1_unread_count >= 0 AND user2_unread_count >= 0", name="ck_conversations_unread"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user1_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    user2_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    last_message_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    user1_unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    user2_unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other_user(self, user_id: str) -> str:
        return self.user2_id if user_id == self.user1_id else self.user1_id

    def unread_count_for(self, user_id: str) -> int:
        if user_id == self.user1_id:
            return self.user1_unread_count
        if user_id == self.user2_id:
            return self.user2_unread_count
        return 0


class Message(Base):
    """Direct message inside a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("sender_id", "client_token", name="uq_messages_sender_token"),
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
        Index("idx_messages_receiver_unread", "receiver_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    sender_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    conversation_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_highlighted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    client_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("event_id", name="uq_notifications_event_id"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(8), nullable=False, default="medium")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    link: Mapped[str | None] = mapped_column(String(256), nullable=True)
    sender_id: Mapped[str | None] = mapped_column(String(USER_ID_LENGTH), nullable=True)
    event_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notification_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONDoc, default=dict)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class NotificationPreference(Base):
    """Per-user notification toggles."""

    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), primary_key=True)
    preferences: Mapped[dict[str, Any]] = mapped_column(JSONDoc, default=dict)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


REQUIRED_TABLES = frozenset(Base.metadata.tables)
