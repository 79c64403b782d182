"""Notification storage, preferences and event deduplication."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import func, select

from matchpoint.db.models import Notification
from matchpoint.errors import ErrorKind
from matchpoint.notifications import service


async def _count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Notification))).scalar_one()


class TestCreate:
    @pytest.mark.asyncio
    async def test_dispatch_stores_and_pushes(self, db, redis) -> None:
        result = await service.dispatch_notification(
            db, "bob", "system", "Welcome", "Glad you're here", {"source": "onboarding"}, "low", redis=redis,
        )
        assert result.success
        note = result.data
        assert note.id is not None
        assert note.is_read is False
        assert note.notification_metadata == {"source": "onboarding"}

        channel, raw = redis.publish.call_args.args
        assert channel == "ws:user:bob"
        payload = json.loads(raw)
        assert payload["event"] == "notification"
        assert payload["data"]["title"] == "Welcome"
        assert payload["data"]["priority"] == "low"

    @pytest.mark.asyncio
    async def test_duplicate_event_id_is_stored_once(self, db, redis) -> None:
        for _ in range(2):
            await service.dispatch_notification(db, "bob", "like", "New like", event_id="like:alice:bob", redis=redis)
        assert await _count(db) == 1
        assert redis.publish.await_count == 1

    @pytest.mark.asyncio
    async def test_invalid_type_is_rejected(self, db) -> None:
        result = await service.dispatch_notification(db, "bob", "carrier_pigeon", "Coo")
        assert result.error is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_invalid_priority_is_rejected(self, db) -> None:
        result = await service.dispatch_notification(db, "bob", "system", "Hi", priority="urgent")
        assert result.error is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_push_failure_does_not_lose_the_row(self, db, redis) -> None:
        redis.publish.side_effect = ConnectionError("redis gone")
        result = await service.dispatch_notification(db, "bob", "system", "Still stored", redis=redis)
        assert result.success
        assert await _count(db) == 1


class TestPreferences:
    @pytest.mark.asyncio
    async def test_defaults(self, db) -> None:
        prefs = (await service.get_preferences(db, "bob")).data
        assert prefs == {"in_app": True, "likes": True, "matches": True, "messages": True}

    @pytest.mark.asyncio
    async def test_muted_type_is_stored_but_not_pushed(self, db, redis) -> None:
        await service.update_preferences(db, "bob", {"likes": False})
        result = await service.dispatch_notification(db, "bob", "like", "New like", redis=redis)
        assert result.success
        assert result.data is not None
        assert await _count(db) == 1
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_in_app_switch_mutes_every_type(self, db, redis) -> None:
        await service.update_preferences(db, "bob", {"in_app": False})
        await service.dispatch_notification(db, "bob", "system", "Maintenance", redis=redis)
        assert await _count(db) == 1
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_merges(self, db) -> None:
        await service.update_preferences(db, "bob", {"likes": False})
        prefs = (await service.update_preferences(db, "bob", {"messages": False})).data
        assert prefs["likes"] is False
        assert prefs["messages"] is False
        assert prefs["matches"] is True

    @pytest.mark.asyncio
    async def test_unknown_key_is_rejected(self, db) -> None:
        result = await service.update_preferences(db, "bob", {"carrierPigeon": True})
        assert result.error is ErrorKind.VALIDATION


class TestReads:
    @pytest.mark.asyncio
    async def test_paging_filter_and_unread(self, db) -> None:
        for i in range(3):
            await service.dispatch_notification(db, "bob", "like", f"like {i}")
        await service.dispatch_notification(db, "bob", "match", "match")
        await service.dispatch_notification(db, "carol", "like", "not bob's")

        notes, total = (await service.get_notifications(db, "bob", page=1, per_page=2)).data
        assert total == 4
        assert [n.title for n in notes] == ["match", "like 2"]

        likes, like_total = (await service.get_notifications(db, "bob", type_="like")).data
        assert like_total == 3
        assert {n.type for n in likes} == {"like"}

        assert (await service.get_unread_count(db, "bob")).data == 4

    @pytest.mark.asyncio
    async def test_mark_one_and_all(self, db) -> None:
        first = (await service.dispatch_notification(db, "bob", "system", "a")).data
        await service.dispatch_notification(db, "bob", "system", "b")
        await service.dispatch_notification(db, "bob", "system", "c")

        assert (await service.mark_as_read(db, "bob", first.id)).success
        assert (await service.get_unread_count(db, "bob")).data == 2
        assert (await service.mark_all_as_read(db, "bob")).data == 2
        assert (await service.get_unread_count(db, "bob")).data == 0

    @pytest.mark.asyncio
    async def test_cannot_touch_someone_elses_notification(self, db) -> None:
        note_id = (await service.dispatch_notification(db, "bob", "system", "private")).data.id
        # A failed operation rolls back and expires every loaded instance
        assert (await service.mark_as_read(db, "eve", note_id)).error is ErrorKind.NOT_FOUND
        assert (await service.delete_notification(db, "eve", note_id)).error is ErrorKind.NOT_FOUND
        assert (await service.get_unread_count(db, "bob")).data == 1

    @pytest.mark.asyncio
    async def test_delete(self, db) -> None:
        note = (await service.dispatch_notification(db, "bob", "system", "bye")).data
        assert (await service.delete_notification(db, "bob", note.id)).success
        assert await _count(db) == 0

    @pytest.mark.asyncio
    async def test_feed_order_unread_then_priority_then_newest(self, db) -> None:
        await service.dispatch_notification(db, "bob", "system", "old-high", priority="high")
        await service.dispatch_notification(db, "bob", "system", "new-low", priority="low")
        read_id = (await service.dispatch_notification(db, "bob", "system", "newest-read", priority="high")).data.id
        await service.mark_as_read(db, "bob", read_id)

        notes, _ = (await service.get_notifications(db, "bob")).data
        assert [n.title for n in notes] == ["old-high", "new-low", "newest-read"]

        second_page, _ = (await service.get_notifications(db, "bob", page=2, per_page=1)).data
        assert [n.title for n in second_page] == ["new-low"]


class TestBatch:
    @pytest.mark.asyncio
    async def test_one_insert_for_many_recipients(self, db, redis) -> None:
        drafts = [
            service.NotificationDraft("bob", "system", "Scheduled maintenance"),
            service.NotificationDraft("carol", "system", "Scheduled maintenance", priority="high"),
            service.NotificationDraft("dave", "like", "New like", sender_id="bob"),
        ]
        result = await service.batch_create_notifications(db, drafts, redis=redis)

        assert result.success
        assert [n.user_id for n in result.data] == ["bob", "carol", "dave"]
        assert all(n.id is not None for n in result.data)
        assert await _count(db) == 3
        assert redis.publish.await_count == 3

    @pytest.mark.asyncio
    async def test_muted_recipients_are_stored_without_push(self, db, redis) -> None:
        await service.update_preferences(db, "dave", {"likes": False})
        drafts = [
            service.NotificationDraft("bob", "like", "New like"),
            service.NotificationDraft("dave", "like", "New like"),
        ]
        await service.batch_create_notifications(db, drafts, redis=redis)

        assert await _count(db) == 2
        channels = [c.args[0] for c in redis.publish.await_args_list]
        assert channels == ["ws:user:bob"]

    @pytest.mark.asyncio
    async def test_one_invalid_draft_rejects_the_batch(self, db) -> None:
        drafts = [
            service.NotificationDraft("bob", "system", "fine"),
            service.NotificationDraft("", "system", "nobody"),
        ]
        result = await service.batch_create_notifications(db, drafts)
        assert result.error is ErrorKind.VALIDATION
        assert await _count(db) == 0

    @pytest.mark.asyncio
    async def test_empty_batch_is_rejected(self, db) -> None:
        result = await service.batch_create_notifications(db, [])
        assert result.error is ErrorKind.VALIDATION
