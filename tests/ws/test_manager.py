"""Unit tests for the WebSocket ConnectionManager."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from matchpoint.ws.manager import ConnectionManager, conversation_id_from_channel, is_valid_channel


@pytest.fixture
def mgr() -> ConnectionManager:
    return ConnectionManager(max_connections_per_user=2)


def _make_ws(*, fail_send: bool = False) -> MagicMock:
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.close = AsyncMock()
    if fail_send:
        ws.send_text = AsyncMock(side_effect=RuntimeError("connection closed"))
    else:
        ws.send_text = AsyncMock()
    return ws


class TestChannels:
    def test_conversation_channel_parsing(self) -> None:
        assert conversation_id_from_channel("conversation:42") == 42
        assert conversation_id_from_channel("conversation:abc") is None
        assert conversation_id_from_channel("conversation:") is None
        assert conversation_id_from_channel("mining") is None

    def test_valid_channels(self) -> None:
        assert is_valid_channel("notifications")
        assert is_valid_channel("conversation:1")
        assert not is_valid_channel("dashboard")


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_client(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        assert await mgr.connect(ws, "conn-1", "alice") is True
        ws.accept.assert_awaited_once()
        assert mgr.connection_count == 1
        assert mgr.get_stats()["unique_users"] == 1

    @pytest.mark.asyncio
    async def test_connection_limit_per_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", "alice")
        await mgr.connect(_make_ws(), "conn-2", "alice")
        third = _make_ws()
        assert await mgr.connect(third, "conn-3", "alice") is False
        third.accept.assert_not_awaited()
        third.close.assert_awaited_once()
        assert mgr.user_connection_count("alice") == 2


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_cleans_up(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", "alice")
        await mgr.subscribe("conn-1", "conversation:7")
        await mgr.disconnect("conn-1")
        assert mgr.connection_count == 0
        assert mgr.get_stats() == {"total_connections": 0, "unique_users": 0, "channels": {}}

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, mgr: ConnectionManager) -> None:
        await mgr.disconnect("nope")
        assert mgr.connection_count == 0


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_subscribe_valid_channel(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", "alice")
        assert await mgr.subscribe("conn-1", "conversation:7") is True
        assert mgr.get_stats()["channels"] == {"conversation:7": 1}

    @pytest.mark.asyncio
    async def test_subscribe_invalid_channel(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", "alice")
        assert await mgr.subscribe("conn-1", "mining") is False

    @pytest.mark.asyncio
    async def test_unsubscribe(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", "alice")
        await mgr.subscribe("conn-1", "notifications")
        assert await mgr.unsubscribe("conn-1", "notifications") is True
        assert mgr.get_stats()["channels"] == {}


class TestDelivery:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_subscribers_only(self, mgr: ConnectionManager) -> None:
        alice, bob, eve = _make_ws(), _make_ws(), _make_ws()
        await mgr.connect(alice, "a", "alice")
        await mgr.connect(bob, "b", "bob")
        await mgr.connect(eve, "e", "eve")
        await mgr.subscribe("a", "conversation:7")
        await mgr.subscribe("b", "conversation:7")

        sent = await mgr.broadcast_to_channel("conversation:7", {"type": "message"})
        assert sent == 2
        eve.send_text.assert_not_awaited()
        assert json.loads(alice.send_text.call_args.args[0]) == {
            "channel": "conversation:7",
            "data": {"type": "message"},
        }

    @pytest.mark.asyncio
    async def test_broadcast_empty_channel(self, mgr: ConnectionManager) -> None:
        assert await mgr.broadcast_to_channel("conversation:9", {}) == 0

    @pytest.mark.asyncio
    async def test_failed_send_disconnects(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(fail_send=True), "a", "alice")
        await mgr.subscribe("a", "conversation:7")
        assert await mgr.broadcast_to_channel("conversation:7", {}) == 0
        assert mgr.connection_count == 0

    @pytest.mark.asyncio
    async def test_send_to_user_respects_subscription(self, mgr: ConnectionManager) -> None:
        subscribed, other = _make_ws(), _make_ws()
        await mgr.connect(subscribed, "a1", "alice")
        await mgr.connect(other, "a2", "alice")
        await mgr.subscribe("a1", "notifications")

        assert await mgr.send_to_user("alice", "notifications", {"n": 1}) == 1
        other.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_to_user_direct_reaches_every_connection(self, mgr: ConnectionManager) -> None:
        phone, laptop = _make_ws(), _make_ws()
        await mgr.connect(phone, "a1", "alice")
        await mgr.connect(laptop, "a2", "alice")

        sent = await mgr.send_to_user_direct("alice", {"type": "notification", "payload": {"id": "1"}})
        assert sent == 2
        assert json.loads(phone.send_text.call_args.args[0])["type"] == "notification"

    @pytest.mark.asyncio
    async def test_send_to_unknown_user(self, mgr: ConnectionManager) -> None:
        assert await mgr.send_to_user_direct("nobody", {}) == 0
