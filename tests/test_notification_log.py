"""Tests for the in-memory notification log."""

from datetime import datetime, timedelta, timezone

from feedhub.models import Notification
from feedhub.notification_log import InMemoryNotificationLog


def notice(username: str, post_id: str, ts: datetime) -> Notification:
    return Notification(username=username, message=f"about {post_id}", post_id=post_id, topic="sports", timestamp=ts)


async def test_append_then_list_newest_first():
    log = InMemoryNotificationLog()
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    await log.append(notice("alice", "old", base))
    await log.append(notice("alice", "new", base + timedelta(minutes=5)))
    await log.append(notice("alice", "mid", base + timedelta(minutes=1)))
    assert [n.post_id for n in await log.list_for("alice")] == ["new", "mid", "old"]


async def test_same_timestamp_keeps_latest_append_first():
    log = InMemoryNotificationLog()
    ts = datetime(2024, 5, 1, tzinfo=timezone.utc)
    await log.append(notice("alice", "first", ts))
    await log.append(notice("alice", "second", ts))
    assert [n.post_id for n in await log.list_for("alice")] == ["second", "first"]


async def test_clear_is_exhaustive_and_scoped():
    log = InMemoryNotificationLog()
    ts = datetime(2024, 5, 1, tzinfo=timezone.utc)
    await log.append(notice("alice", "p1", ts))
    await log.append(notice("alice", "p2", ts))
    await log.append(notice("carol", "p1", ts))

    assert await log.clear_for("alice") == 2
    assert await log.list_for("alice") == []
    assert [n.post_id for n in await log.list_for("carol")] == ["p1"]
    assert await log.clear_for("alice") == 0


async def test_unknown_user_has_empty_log():
    assert await InMemoryNotificationLog().list_for("nobody") == []


def test_notification_wire_shape():
    ts = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    n = Notification(username="alice", message="hi", post_id="p1", topic="sports", timestamp=ts)
    d = n.to_dict()
    assert d["postId"] == "p1"
    assert d["read"] is False
    assert d["timestamp"] == "2024-05-01T12:00:00+00:00"
    assert Notification.from_dict(d).notification_id == n.notification_id
