"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str | None = None
    priority: str
    link: str | None = None
    sender_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None
    read: bool


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    count: int


class NotificationPreferencesResponse(BaseModel):
    in_app: bool
    likes: bool
    matches: bool
    messages: bool


class UpdatePreferencesRequest(BaseModel):
    in_app: bool | None = None
    likes: bool | None = None
    matches: bool | None = None
    messages: bool | None = None
