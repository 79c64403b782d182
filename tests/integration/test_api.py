"""HTTP surface: status mapping and end-to-end flows through the routers."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


def _auth(make_token, user_id: str, premium: bool = False) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, premium)}"}


class TestPointsApi:
    @pytest.mark.asyncio
    async def test_balance_and_history(self, client: AsyncClient, make_token) -> None:
        alice = _auth(make_token, "alice")
        response = await client.get("/api/v1/points", headers=alice)
        assert response.status_code == 200
        assert response.json()["balance"] == 100

        await client.post("/api/v1/likes/bob", headers=alice)
        history = (await client.get("/api/v1/points/transactions", headers=alice)).json()["transactions"]
        assert [(t["amount"], t["transaction_type"]) for t in history] == [(-5, "like")]


class TestMatchingApi:
    @pytest.mark.asyncio
    async def test_like_back_reports_match(self, client: AsyncClient, make_token) -> None:
        first = await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        assert first.status_code == 200
        assert first.json()["is_match"] is False

        second = await client.post("/api/v1/likes/alice", headers=_auth(make_token, "bob"))
        body = second.json()
        assert body["is_match"] is True
        assert body["conversation_id"] is not None

        matches = (await client.get("/api/v1/matches", headers=_auth(make_token, "alice"))).json()["matches"]
        assert [m["user_id"] for m in matches] == ["bob"]

    @pytest.mark.asyncio
    async def test_insufficient_points_is_402(self, client: AsyncClient, make_token, set_balance) -> None:
        await set_balance("alice", 2)
        response = await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        assert response.status_code == 402
        assert response.json() == {
            "detail": "Insufficient points: 5 required, 2 available",
            "error": "insufficient_points",
            "required": 5,
            "balance": 2,
            "deficit": 3,
        }

    @pytest.mark.asyncio
    async def test_premium_like_with_empty_balance(self, client: AsyncClient, make_token, set_balance) -> None:
        await set_balance("alice", 0)
        response = await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice", premium=True))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_self_like_is_422(self, client: AsyncClient, make_token) -> None:
        response = await client.post("/api/v1/likes/alice", headers=_auth(make_token, "alice"))
        assert response.status_code == 422
        assert response.json()["error"] == "validation"

    @pytest.mark.asyncio
    async def test_incoming_likes(self, client: AsyncClient, make_token) -> None:
        await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        incoming = (await client.get("/api/v1/likes/incoming", headers=_auth(make_token, "bob"))).json()["likes"]
        assert [like["user_id"] for like in incoming] == ["alice"]
        outgoing = (await client.get("/api/v1/likes", headers=_auth(make_token, "alice"))).json()["likes"]
        assert [like["user_id"] for like in outgoing] == ["bob"]

    @pytest.mark.asyncio
    async def test_skip_and_undo(self, client: AsyncClient, make_token, add_profile) -> None:
        await add_profile("bob", "Bob")
        alice = _auth(make_token, "alice")
        assert (await client.post("/api/v1/skips/bob", headers=alice)).status_code == 200

        skipped = (await client.get("/api/v1/skips", headers=alice)).json()["skipped"]
        assert [(s["id"], s["username"]) for s in skipped] == [("bob", "Bob")]

        assert (await client.delete("/api/v1/skips/bob", headers=alice)).status_code == 200
        assert (await client.get("/api/v1/skips", headers=alice)).json()["skipped"] == []


class TestMessagingApi:
    @pytest.mark.asyncio
    async def test_conversation_flow(self, client: AsyncClient, make_token, redis) -> None:
        alice, bob = _auth(make_token, "alice"), _auth(make_token, "bob")

        opened = await client.post("/api/v1/conversations", json={"other_user_id": "bob"}, headers=alice)
        assert opened.status_code == 200
        conversation_id = opened.json()["id"]

        sent = await client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"content": "hi bob", "client_token": "c-1"},
            headers=alice,
        )
        assert sent.status_code == 201
        assert sent.json()["receiver_id"] == "bob"

        retried = await client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"content": "hi bob", "client_token": "c-1"},
            headers=alice,
        )
        assert retried.json()["id"] == sent.json()["id"]

        listing = (await client.get("/api/v1/conversations", headers=bob)).json()["conversations"]
        assert listing[0]["unread_count"] == 1
        assert listing[0]["last_message"]["content"] == "hi bob"

        read = await client.post(f"/api/v1/conversations/{conversation_id}/read", headers=bob)
        assert read.json() == {"marked": 1}

        history = (await client.get(f"/api/v1/conversations/{conversation_id}/messages", headers=bob)).json()
        assert [m["is_read"] for m in history["messages"]] == [True]

        assert redis.publish.await_count >= 1

    @pytest.mark.asyncio
    async def test_outsider_gets_422(self, client: AsyncClient, make_token) -> None:
        opened = await client.post(
            "/api/v1/conversations", json={"other_user_id": "bob"}, headers=_auth(make_token, "alice"),
        )
        conversation_id = opened.json()["id"]
        response = await client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"content": "let me in"},
            headers=_auth(make_token, "eve"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_404(self, client: AsyncClient, make_token) -> None:
        response = await client.get("/api/v1/conversations/999/messages", headers=_auth(make_token, "alice"))
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_empty_message_is_422(self, client: AsyncClient, make_token) -> None:
        response = await client.post(
            "/api/v1/conversations/1/messages", json={"content": ""}, headers=_auth(make_token, "alice"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_hides_conversation(self, client: AsyncClient, make_token) -> None:
        alice = _auth(make_token, "alice")
        opened = await client.post("/api/v1/conversations", json={"other_user_id": "bob"}, headers=alice)
        conversation_id = opened.json()["id"]
        assert (await client.delete(f"/api/v1/conversations/{conversation_id}", headers=alice)).status_code == 200
        assert (await client.get("/api/v1/conversations", headers=alice)).json()["conversations"] == []


class TestNotificationsApi:
    @pytest.mark.asyncio
    async def test_list_read_and_delete(self, client: AsyncClient, make_token) -> None:
        await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        bob = _auth(make_token, "bob")

        listing = (await client.get("/api/v1/notifications", headers=bob)).json()
        assert listing["total"] == 1
        note = listing["notifications"][0]
        assert note["type"] == "like"
        assert note["read"] is False

        assert (await client.get("/api/v1/notifications/unread-count", headers=bob)).json() == {"count": 1}
        assert (await client.post(f"/api/v1/notifications/{note['id']}/read", headers=bob)).status_code == 200
        assert (await client.get("/api/v1/notifications/unread-count", headers=bob)).json() == {"count": 0}

        assert (await client.delete(f"/api/v1/notifications/{note['id']}", headers=bob)).status_code == 200
        assert (await client.delete(f"/api/v1/notifications/{note['id']}", headers=bob)).status_code == 404

    @pytest.mark.asyncio
    async def test_filter_by_type(self, client: AsyncClient, make_token) -> None:
        await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        await client.post("/api/v1/likes/alice", headers=_auth(make_token, "bob"))
        bob = _auth(make_token, "bob")

        matches = (await client.get("/api/v1/notifications?type=match", headers=bob)).json()
        assert matches["total"] == 1
        assert (await client.get("/api/v1/notifications?type=bogus", headers=bob)).status_code == 422

    @pytest.mark.asyncio
    async def test_read_all(self, client: AsyncClient, make_token) -> None:
        await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        await client.post("/api/v1/likes/bob", headers=_auth(make_token, "carol"))
        response = await client.post("/api/v1/notifications/read-all", headers=_auth(make_token, "bob"))
        assert response.json() == {"detail": "Marked 2 notifications as read"}

    @pytest.mark.asyncio
    async def test_preferences(self, client: AsyncClient, make_token, redis) -> None:
        bob = _auth(make_token, "bob")
        assert (await client.get("/api/v1/notifications/preferences", headers=bob)).json()["likes"] is True

        updated = await client.patch("/api/v1/notifications/preferences", json={"likes": False}, headers=bob)
        assert updated.json() == {"in_app": True, "likes": False, "matches": True, "messages": True}

        await client.post("/api/v1/likes/bob", headers=_auth(make_token, "alice"))
        # Muted types are still stored, only the realtime push is skipped
        assert (await client.get("/api/v1/notifications", headers=bob)).json()["total"] == 1
        redis.publish.assert_not_awaited()


class TestConnectionsApi:
    @pytest.mark.asyncio
    async def test_request_accept_and_list(self, client: AsyncClient, make_token) -> None:
        alice, bob = _auth(make_token, "alice"), _auth(make_token, "bob")
        sent = await client.post("/api/v1/connections/bob", headers=alice)
        assert sent.status_code == 200
        connection = sent.json()
        assert (connection["requester_id"], connection["recipient_id"], connection["status"]) == (
            "alice", "bob", "pending",
        )

        pending = (await client.get("/api/v1/connections?status=pending", headers=bob)).json()["connections"]
        assert [c["id"] for c in pending] == [connection["id"]]

        answered = await client.post(
            f"/api/v1/connections/{connection['id']}/respond", json={"status": "connected"}, headers=bob,
        )
        assert answered.json()["status"] == "connected"
        conversations = (await client.get("/api/v1/conversations", headers=alice)).json()["conversations"]
        assert len(conversations) == 1

    @pytest.mark.asyncio
    async def test_requester_cannot_answer(self, client: AsyncClient, make_token) -> None:
        alice = _auth(make_token, "alice")
        connection_id = (await client.post("/api/v1/connections/bob", headers=alice)).json()["id"]
        response = await client.post(
            f"/api/v1/connections/{connection_id}/respond", json={"status": "connected"}, headers=alice,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_answer_is_422(self, client: AsyncClient, make_token) -> None:
        connection_id = (await client.post("/api/v1/connections/bob", headers=_auth(make_token, "alice"))).json()["id"]
        response = await client.post(
            f"/api/v1/connections/{connection_id}/respond",
            json={"status": "pending"},
            headers=_auth(make_token, "bob"),
        )
        assert response.status_code == 422
