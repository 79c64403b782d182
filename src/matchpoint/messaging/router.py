"""Conversation and message endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.database import get_session
from matchpoint.db.models import Message, Profile
from matchpoint.dependencies import get_redis_dep
from matchpoint.identity.dependencies import get_caller
from matchpoint.identity.jwt import Caller
from matchpoint.matching.profiles import get_profiles
from matchpoint.messaging import conversation_service, message_service
from matchpoint.messaging.schemas import (
    ConversationListResponse,
    ConversationResponse,
    MarkReadResponse,
    MessageListResponse,
    MessageResponse,
    OpenConversationRequest,
    ParticipantResponse,
    SendMessageRequest,
)
from matchpoint.responses import unwrap

router = APIRouter(prefix="/api/v1/conversations", tags=["Messaging"])


def _message(m: Message) -> MessageResponse:
    return MessageResponse(
        id=m.id,
        conversation_id=m.conversation_id,
        sender_id=m.sender_id,
        receiver_id=m.receiver_id,
        content=m.content,
        is_highlighted=m.is_highlighted,
        is_read=m.is_read,
        client_token=m.client_token,
        created_at=m.created_at,
    )


def _participant(user_id: str, profile: Profile | None) -> ParticipantResponse:
    if profile is None:
        return ParticipantResponse(id=user_id)
    return ParticipantResponse(
        id=user_id,
        username=profile.username,
        avatar_url=profile.avatar_url,
        online_status=profile.online_status,
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Active conversations, most recent activity first."""
    summaries = unwrap(await conversation_service.list_conversations(db, caller.user_id))
    return ConversationListResponse(
        conversations=[
            ConversationResponse(
                id=s.conversation.id,
                other_user=_participant(s.other_user_id, s.other_user),
                last_message=_message(s.last_message) if s.last_message else None,
                last_message_time=s.conversation.last_message_time,
                unread_count=s.unread_count,
                is_active=s.conversation.is_active,
            )
            for s in summaries
        ],
    )


@router.post("", response_model=ConversationResponse)
async def open_conversation(
    body: OpenConversationRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Find or create the conversation with another user and clear the caller's unread count."""
    conversation = unwrap(await conversation_service.get_or_create_conversation(
        db, caller.user_id, other_user_id=body.other_user_id,
    ))
    other_id = conversation.other_user(caller.user_id)
    profiles = await get_profiles(db, [other_id])
    return ConversationResponse(
        id=conversation.id,
        other_user=_participant(other_id, profiles.get(other_id)),
        last_message_time=conversation.last_message_time,
        unread_count=conversation.unread_count_for(caller.user_id),
        is_active=conversation.is_active,
    )


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    messages = unwrap(await message_service.get_messages(db, conversation_id, caller.user_id, limit, offset))
    return MessageListResponse(messages=[_message(m) for m in messages], limit=limit, offset=offset)


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: int,
    body: SendMessageRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Send a message to the other participant. 402 when the caller cannot pay for it."""
    receiver_id = unwrap(await conversation_service.get_counterpart(db, conversation_id, caller.user_id))
    message = unwrap(await message_service.send_message(
        db,
        caller.user_id,
        receiver_id,
        conversation_id,
        body.content,
        body.is_highlighted,
        is_premium=caller.is_premium,
        client_token=body.client_token,
        redis=redis,
    ))
    return _message(message)


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    conversation_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    marked = unwrap(await conversation_service.mark_read(db, conversation_id, caller.user_id))
    return MarkReadResponse(marked=marked)


@router.delete("/{conversation_id}", status_code=200)
async def delete_conversation(
    conversation_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Hide the conversation until either side opens it again."""
    unwrap(await conversation_service.deactivate_conversation(db, conversation_id, caller.user_id))
    return {"detail": "Conversation removed"}
