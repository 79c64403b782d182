"""Read-side helpers over an already-fetched notification feed.

None of these touch storage. They accept any objects exposing ``type``,
``priority``, ``is_read`` and ``created_at`` (ORM rows or schemas).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, TypeVar


class FeedItem(Protocol):
    type: str
    priority: str
    is_read: bool
    created_at: datetime | None


N = TypeVar("N", bound=FeedItem)

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
DAY_BUCKETS = ("today", "yesterday", "this_week", "older")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _priority_rank(item: FeedItem) -> int:
    return PRIORITY_ORDER.get(item.priority or "medium", 1)


def sort_feed(notifications: Iterable[N]) -> list[N]:
    """Unread before read, then high > medium > low, then newest first."""
    return sorted(
        notifications,
        key=lambda n: (n.is_read, _priority_rank(n), -_as_utc(n.created_at).timestamp()),
    )


def group_by_type(notifications: Iterable[N]) -> dict[str, list[N]]:
    groups: dict[str, list[N]] = {}
    for n in notifications:
        groups.setdefault(n.type or "other", []).append(n)
    return groups


def group_by_priority(notifications: Iterable[N]) -> dict[str, list[N]]:
    groups: dict[str, list[N]] = {p: [] for p in PRIORITY_ORDER}
    for n in notifications:
        groups.setdefault(n.priority or "medium", []).append(n)
    return groups


def group_by_day(notifications: Iterable[N], now: datetime | None = None) -> dict[str, list[N]]:
    """Bucket into today / yesterday / this_week (last 7 days) / older, by UTC date."""
    today = _as_utc(now or datetime.now(timezone.utc)).date()
    yesterday = today - timedelta(days=1)
    week_ago = today - timedelta(days=7)

    groups: dict[str, list[N]] = {bucket: [] for bucket in DAY_BUCKETS}
    for n in notifications:
        day = _as_utc(n.created_at).date()
        if day >= today:
            groups["today"].append(n)
        elif day == yesterday:
            groups["yesterday"].append(n)
        elif day >= week_ago:
            groups["this_week"].append(n)
        else:
            groups["older"].append(n)
    return groups


def important(notifications: Iterable[N], limit: int | None = None) -> list[N]:
    """High-priority notifications in feed order."""
    items = [n for n in sort_feed(notifications) if n.priority == "high"]
    return items[:limit] if limit else items


def feed_stats(notifications: Sequence[FeedItem]) -> dict[str, Any]:
    by_type: dict[str, int] = {}
    for n in notifications:
        key = n.type or "other"
        by_type[key] = by_type.get(key, 0) + 1
    return {
        "total": len(notifications),
        "unread": sum(1 for n in notifications if not n.is_read),
        "high_priority": sum(1 for n in notifications if n.priority == "high"),
        "by_type": by_type,
    }


def filter_by_type(notifications: Iterable[N], type_: str) -> list[N]:
    return [n for n in notifications if n.type == type_]
