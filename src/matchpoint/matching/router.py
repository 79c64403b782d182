"""Like, match, skip and connection-request endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.database import get_session
from matchpoint.db.models import Connection
from matchpoint.dependencies import get_redis_dep
from matchpoint.identity.dependencies import get_caller
from matchpoint.identity.jwt import Caller
from matchpoint.matching import connection_service, like_service, skip_service
from matchpoint.matching.schemas import (
    ConnectionListResponse,
    ConnectionResponse,
    LikeEdgeResponse,
    LikeListResponse,
    LikeResponse,
    MatchListResponse,
    MatchResponse,
    RespondConnectionRequest,
    SkippedUserListResponse,
    SkippedUserResponse,
)
from matchpoint.responses import unwrap

router = APIRouter(prefix="/api/v1", tags=["Matching"])


def _connection(c: Connection) -> ConnectionResponse:
    return ConnectionResponse(
        id=c.id,
        requester_id=c.user_id,
        recipient_id=c.connected_user_id,
        status=c.status,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


@router.post("/likes/{target_id}", response_model=LikeResponse)
async def like_user(
    target_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Like a user. Reports a match when the like is reciprocal; 402 when out of points."""
    outcome = unwrap(await like_service.send_like(
        db, caller.user_id, target_id, caller.is_premium, redis=redis,
    ))
    return LikeResponse(**asdict(outcome))


@router.get("/likes", response_model=LikeListResponse)
async def list_likes(
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    likes = unwrap(await like_service.get_liked_users(db, caller.user_id, limit))
    return LikeListResponse(likes=[LikeEdgeResponse(user_id=like.liked_user_id, created_at=like.created_at) for like in likes])


@router.get("/likes/incoming", response_model=LikeListResponse)
async def list_incoming_likes(
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    """Users who liked the caller and are still waiting for a like back."""
    likes = unwrap(await like_service.get_incoming_likes(db, caller.user_id, limit))
    return LikeListResponse(likes=[LikeEdgeResponse(user_id=like.user_id, created_at=like.created_at) for like in likes])


@router.get("/matches", response_model=MatchListResponse)
async def list_matches(
    limit: int = Query(50, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    matches = unwrap(await like_service.get_matches(db, caller.user_id, limit))
    return MatchListResponse(
        matches=[
            MatchResponse(id=m.id, user_id=m.other_user(caller.user_id), created_at=m.created_at)
            for m in matches
        ],
    )


@router.post("/skips/{target_id}", status_code=200)
async def skip_user(
    target_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    unwrap(await skip_service.skip_user(db, caller.user_id, target_id))
    return {"detail": "User skipped"}


@router.delete("/skips/{target_id}", status_code=200)
async def undo_skip(
    target_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    unwrap(await skip_service.undo_skip(db, caller.user_id, target_id))
    return {"detail": "Skip removed"}


@router.get("/skips", response_model=SkippedUserListResponse)
async def list_skipped(
    limit: int = Query(10, ge=1, le=100),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    skipped = unwrap(await skip_service.get_skipped_users(db, caller.user_id, limit))
    return SkippedUserListResponse(skipped=[SkippedUserResponse(**asdict(s)) for s in skipped])


@router.post("/connections/{target_id}", response_model=ConnectionResponse)
async def request_connection(
    target_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Send a connection request, or return the pair's existing one."""
    connection = unwrap(await connection_service.send_connection_request(
        db, caller.user_id, target_id, redis=redis,
    ))
    return _connection(connection)


@router.post("/connections/{connection_id}/respond", response_model=ConnectionResponse)
async def respond_to_connection(
    connection_id: int,
    body: RespondConnectionRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    connection = unwrap(await connection_service.respond_to_connection_request(
        db, connection_id, caller.user_id, body.status, redis=redis,
    ))
    return _connection(connection)


@router.get("/connections", response_model=ConnectionListResponse)
async def list_connections(
    status: Literal["pending", "connected", "rejected"] | None = Query(None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_session),
):
    connections = unwrap(await connection_service.get_connections(db, caller.user_id, status))
    return ConnectionListResponse(connections=[_connection(c) for c in connections])
