"""Tests for the Redis pub/sub to WebSocket bridge."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from matchpoint.ws.bridge import CONVERSATION_PATTERN, USER_PATTERN, PubSubBridge


def _manager() -> MagicMock:
    mgr = MagicMock()
    mgr.send_to_user_direct = AsyncMock(return_value=1)
    mgr.broadcast_to_channel = AsyncMock(return_value=2)
    return mgr


def _redis_with(messages: list[dict | None]) -> tuple[MagicMock, AsyncMock]:
    pubsub = AsyncMock()
    queue = list(messages)

    async def fake_get_message(**kwargs):
        await asyncio.sleep(0)
        return queue.pop(0) if queue else None

    pubsub.get_message = fake_get_message
    redis = MagicMock()
    redis.pubsub = MagicMock(return_value=pubsub)
    return redis, pubsub


async def _run(bridge: PubSubBridge) -> None:
    async def stop_after_delay():
        await asyncio.sleep(0.05)
        await bridge.stop()

    await asyncio.gather(bridge.start(), stop_after_delay())


class TestDispatch:
    @pytest.mark.asyncio
    async def test_user_channel_goes_direct(self) -> None:
        mgr = _manager()
        bridge = PubSubBridge(MagicMock(), mgr)
        sent = await bridge.dispatch("ws:user:alice", {"event": "notification", "data": {"id": "9"}})
        assert sent == 1
        mgr.send_to_user_direct.assert_awaited_once_with(
            "alice", {"type": "notification", "payload": {"id": "9"}},
        )

    @pytest.mark.asyncio
    async def test_conversation_channel_broadcasts(self) -> None:
        mgr = _manager()
        bridge = PubSubBridge(MagicMock(), mgr)
        sent = await bridge.dispatch("ws:conversation:7", {"event": "message", "data": {"id": 3}})
        assert sent == 2
        mgr.broadcast_to_channel.assert_awaited_once_with(
            "conversation:7", {"type": "message", "payload": {"id": 3}},
        )

    @pytest.mark.asyncio
    async def test_malformed_channels_are_dropped(self) -> None:
        mgr = _manager()
        bridge = PubSubBridge(MagicMock(), mgr)
        assert await bridge.dispatch("ws:conversation:abc", {}) == 0
        assert await bridge.dispatch("ws:user:", {}) == 0
        assert await bridge.dispatch("pubsub:elsewhere", {}) == 0
        mgr.send_to_user_direct.assert_not_awaited()
        mgr.broadcast_to_channel.assert_not_awaited()


class TestBridgeLifecycle:
    @pytest.mark.asyncio
    async def test_bridge_forwards_message(self) -> None:
        redis, pubsub = _redis_with([
            {"type": "pmessage", "channel": "ws:conversation:7", "data": json.dumps({"event": "message", "data": {}})},
            None,
        ])
        mgr = _manager()
        await _run(PubSubBridge(redis, mgr))

        pubsub.psubscribe.assert_awaited_once_with(USER_PATTERN, CONVERSATION_PATTERN)
        mgr.broadcast_to_channel.assert_awaited_once()
        pubsub.punsubscribe.assert_awaited_once()
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_message_skipped(self) -> None:
        redis, _ = _redis_with([
            {"type": "pmessage", "channel": b"ws:user:alice", "data": "not valid json {{{"},
            {"type": "pmessage", "channel": "ws:user:alice", "data": json.dumps([1, 2])},
        ])
        mgr = _manager()
        await _run(PubSubBridge(redis, mgr))
        mgr.send_to_user_direct.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bytes_are_decoded(self) -> None:
        redis, _ = _redis_with([
            {"type": "pmessage", "channel": b"ws:user:alice", "data": json.dumps({"event": "notification"}).encode()},
        ])
        mgr = _manager()
        await _run(PubSubBridge(redis, mgr))
        mgr.send_to_user_direct.assert_awaited_once()
        assert mgr.send_to_user_direct.call_args.args[0] == "alice"
