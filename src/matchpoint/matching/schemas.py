"""Pydantic schemas for likes, matches and skips."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class LikeResponse(BaseModel):
    is_match: bool
    already_liked: bool = False
    match_id: int | None = None
    conversation_id: int | None = None


class LikeEdgeResponse(BaseModel):
    user_id: str
    created_at: datetime | None = None


class LikeListResponse(BaseModel):
    likes: list[LikeEdgeResponse]


class MatchResponse(BaseModel):
    id: int
    user_id: str
    created_at: datetime | None = None


class MatchListResponse(BaseModel):
    matches: list[MatchResponse]


class SkippedUserResponse(BaseModel):
    id: str
    skipped_at: datetime | None = None
    username: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    age: int | None = None
    gender: str | None = None
    interests: list[str] = Field(default_factory=list)
    is_premium: bool = False
    online_status: str | None = None


class SkippedUserListResponse(BaseModel):
    skipped: list[SkippedUserResponse]


class ConnectionResponse(BaseModel):
    id: int
    requester_id: str
    recipient_id: str
    status: Literal["pending", "connected", "rejected"]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConnectionListResponse(BaseModel):
    connections: list[ConnectionResponse]


class RespondConnectionRequest(BaseModel):
    status: Literal["connected", "rejected"]
