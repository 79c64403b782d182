"""Connection requests: an explicit "let's talk" that the recipient accepts or rejects.

A request is free and directional. At most one request exists per unordered
pair; asking again, in either direction, returns the existing row. Accepting
opens the pair's conversation. Each request is answered exactly once.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matchpoint.db.models import Connection, Notification
from matchpoint.db.statements import insert_ignoring_conflicts, lock_pair
from matchpoint.errors import NotFoundError, OperationResult, ValidationError, require_ids, service_operation
from matchpoint.matching.profiles import get_username
from matchpoint.messaging.conversation_service import find_or_create_conversation
from matchpoint.notifications.push import push_notification_to_user
from matchpoint.notifications.service import create_notification

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    REJECTED = "rejected"


ANSWERS = (ConnectionStatus.CONNECTED, ConnectionStatus.REJECTED)


async def find_connection(db: AsyncSession, user_a: str, user_b: str) -> Connection | None:
    """The pair's request, whichever side sent it."""
    result = await db.execute(
        select(Connection)
        .where(or_(
            and_(Connection.user_id == user_a, Connection.connected_user_id == user_b),
            and_(Connection.user_id == user_b, Connection.connected_user_id == user_a),
        ))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def load_connection(db: AsyncSession, connection_id: int) -> Connection:
    result = await db.execute(
        select(Connection)
        .where(Connection.id == connection_id)
        .execution_options(populate_existing=True)
    )
    connection = result.scalar_one_or_none()
    if connection is None:
        raise NotFoundError(f"Connection {connection_id} not found")
    return connection


async def _notify_request(db: AsyncSession, connection: Connection) -> Notification | None:
    requester_name = await get_username(db, connection.user_id)
    return await create_notification(
        db,
        connection.connected_user_id,
        "connection_request",
        "New connection request",
        f"{requester_name} sent you a connection request.",
        {"connection_id": connection.id, "requester_id": connection.user_id},
        "high",
        link="/matching",
        sender_id=connection.user_id,
        event_id=f"connection:{connection.id}:request",
    )


async def _notify_response(
    db: AsyncSession,
    connection: Connection,
    conversation_id: int | None,
) -> Notification | None:
    responder_name = await get_username(db, connection.connected_user_id)
    accepted = connection.status == ConnectionStatus.CONNECTED.value
    metadata: dict[str, Any] = {
        "connection_id": connection.id,
        "status": "accepted" if accepted else "rejected",
    }
    if accepted:
        metadata["conversation_id"] = conversation_id
        title = "Connection request accepted"
        message = f"{responder_name} accepted your connection request. Send them a message!"
    else:
        title = "Connection request declined"
        message = f"{responder_name} declined your connection request."
    return await create_notification(
        db,
        connection.user_id,
        "connection_response",
        title,
        message,
        metadata,
        "high" if accepted else "medium",
        link=f"/messages/{conversation_id}" if accepted else "/matching",
        sender_id=connection.connected_user_id,
        event_id=f"connection:{connection.id}:{connection.status}",
    )


@service_operation("send_connection_request")
async def send_connection_request(
    db: AsyncSession,
    actor_id: str,
    target_id: str,
    *,
    redis: Any | None = None,
) -> OperationResult[Connection]:
    """Ask ``target_id`` to connect. Repeats return the pair's existing request."""
    require_ids(actor_id=actor_id, target_id=target_id)
    if actor_id == target_id:
        raise ValidationError("Cannot connect with yourself")

    await lock_pair(db, actor_id, target_id)
    existing = await find_connection(db, actor_id, target_id)
    if existing is not None:
        # Nothing written; commit keeps the loaded row readable
        await db.commit()
        return OperationResult.ok(existing)

    now = datetime.now(timezone.utc)
    inserted = await db.execute(
        insert_ignoring_conflicts(
            db,
            Connection,
            ["user_id", "connected_user_id"],
            user_id=actor_id,
            connected_user_id=target_id,
            status=ConnectionStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        ).returning(Connection.id)
    )
    connection_id = inserted.scalar_one_or_none()
    if connection_id is None:
        # A concurrent call recorded this request first
        await db.rollback()
        return OperationResult.ok(await find_connection(db, actor_id, target_id))

    connection = await load_connection(db, connection_id)
    notification = await _notify_request(db, connection)
    await db.commit()
    await push_notification_to_user(redis, notification)
    logger.info("Connection request %s: %s -> %s", connection.id, actor_id, target_id)
    return OperationResult.ok(connection)


@service_operation("respond_to_connection_request")
async def respond_to_connection_request(
    db: AsyncSession,
    connection_id: int,
    responder_id: str,
    status: ConnectionStatus | str,
    *,
    redis: Any | None = None,
) -> OperationResult[Connection]:
    """Accept or reject a pending request addressed to ``responder_id``."""
    require_ids(responder_id=responder_id, connection_id=connection_id)
    try:
        answer = ConnectionStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid connection status: {status}") from None
    if answer not in ANSWERS:
        raise ValidationError("A request can only be answered with connected or rejected")

    connection = await load_connection(db, connection_id)
    if connection.connected_user_id != responder_id:
        raise ValidationError("Only the recipient can answer a connection request")

    answered = await db.execute(
        update(Connection)
        .where(Connection.id == connection_id, Connection.status == ConnectionStatus.PENDING.value)
        .values(status=answer.value, updated_at=datetime.now(timezone.utc))
        .returning(Connection.id)
        .execution_options(synchronize_session=False)
    )
    if answered.scalar_one_or_none() is None:
        raise ValidationError("Connection request has already been answered")

    connection = await load_connection(db, connection_id)
    conversation_id = None
    if answer is ConnectionStatus.CONNECTED:
        conversation = await find_or_create_conversation(db, connection.user_id, connection.connected_user_id)
        conversation_id = conversation.id
    notification = await _notify_response(db, connection, conversation_id)
    await db.commit()
    await push_notification_to_user(redis, notification)
    logger.info("Connection %s answered: %s", connection_id, answer.value)
    return OperationResult.ok(connection)


@service_operation("get_connections")
async def get_connections(
    db: AsyncSession,
    user_id: str,
    status: ConnectionStatus | str | None = None,
) -> OperationResult[list[Connection]]:
    """Requests the user sent or received, newest first."""
    require_ids(user_id=user_id)
    filters = [or_(Connection.user_id == user_id, Connection.connected_user_id == user_id)]
    if status is not None:
        try:
            filters.append(Connection.status == ConnectionStatus(status).value)
        except ValueError:
            raise ValidationError(f"Invalid connection status: {status}") from None

    result = await db.execute(
        select(Connection)
        .where(*filters)
        .order_by(Connection.created_at.desc(), Connection.id.desc())
        .execution_options(populate_existing=True)
    )
    return OperationResult.ok(list(result.scalars().all()))
