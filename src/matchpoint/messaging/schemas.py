"""Pydantic schemas for conversations and messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class OpenConversationRequest(BaseModel):
    other_user_id: str = Field(..., min_length=1, max_length=64)


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)
    is_highlighted: bool = False
    client_token: str | None = Field(None, min_length=1, max_length=64)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: str
    receiver_id: str
    content: str
    is_highlighted: bool
    is_read: bool
    client_token: str | None = None
    created_at: datetime | None = None


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    limit: int
    offset: int


class ParticipantResponse(BaseModel):
    id: str
    username: str | None = None
    avatar_url: str | None = None
    online_status: str | None = None


class ConversationResponse(BaseModel):
    id: int
    other_user: ParticipantResponse
    last_message: MessageResponse | None = None
    last_message_time: datetime | None = None
    unread_count: int = 0
    is_active: bool = True


class ConversationListResponse(BaseModel):
    conversations: list[ConversationResponse]


class MarkReadResponse(BaseModel):
    marked: int
