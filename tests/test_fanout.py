"""Tests for the fan-out engine: persist, log per subscriber, push per live session."""

import asyncio

import pytest

from feedhub.content_store import InMemoryContentStore
from feedhub.errors import PersistFailure, StoreUnavailable
from feedhub.fanout import FanoutEngine
from feedhub.models import Post
from feedhub.notification_log import InMemoryNotificationLog
from feedhub.observability import Metrics
from feedhub.observability.metrics import NOTIFICATIONS_FAILED, NOTIFICATIONS_LOGGED
from feedhub.registry import Registry
from feedhub.transport import Transport

from helpers import FailingSend, RecordingSend, post_fields, settle


class BrokenContentStore(InMemoryContentStore):
    async def save(self, post):
        raise StoreUnavailable("connection refused")


class HangingContentStore(InMemoryContentStore):
    async def save(self, post):
        await asyncio.sleep(10)


class FlakyLog(InMemoryNotificationLog):
    """Fails appends for the listed users."""

    def __init__(self, failing):
        super().__init__()
        self._failing = set(failing)

    async def append(self, notification):
        if notification.username in self._failing:
            raise StoreUnavailable("shard unavailable")
        await super().append(notification)


def build(content=None, log=None, store_timeout=1.0):
    registry = Registry()
    metrics = Metrics()
    transport = Transport(registry, metrics, push_timeout=0.5)
    engine = FanoutEngine(
        content or InMemoryContentStore(),
        log or InMemoryNotificationLog(),
        registry,
        transport,
        metrics,
        store_timeout=store_timeout,
    )
    return engine, registry, transport, metrics


def make_post(**overrides):
    return Post.from_dict(post_fields(**overrides))


async def test_subscribe_then_publish_delivers(hub):
    await hub.subscribe("alice", "sports")
    result = await hub.publish(post_fields())

    assert result.subscribers == 1
    assert result.notified == 1
    notifications = await hub.notifications("alice")
    assert len(notifications) == 1
    assert notifications[0].message == "New post in sports posted by bob: Game Day"
    assert notifications[0].post_id == "p1"
    assert notifications[0].read is False
    assert await hub.notifications("carol") == []


async def test_no_spurious_delivery(hub):
    await hub.subscribe("alice", "music")
    await hub.publish(post_fields())
    assert await hub.notifications("alice") == []


async def test_unsubscribe_stops_future_delivery_but_keeps_history(hub):
    await hub.subscribe("alice", "sports")
    await hub.publish(post_fields(id="p1"))
    await hub.unsubscribe("alice", "sports")
    await hub.publish(post_fields(id="p2"))

    assert [n.post_id for n in await hub.notifications("alice")] == ["p1"]
    assert await hub.clear_notifications("alice") == 1
    assert await hub.notifications("alice") == []


async def test_repeated_subscribe_produces_one_notification(hub):
    for _ in range(3):
        await hub.subscribe("alice", "sports")
    await hub.publish(post_fields())
    assert len(await hub.notifications("alice")) == 1


async def test_live_session_receives_new_post(hub):
    sink = RecordingSend()
    session = hub.connect(sink)
    await hub.register(session.session_id, "alice")
    await hub.join_topic(session.session_id, "sports")

    result = await hub.publish(post_fields())
    await settle()

    assert result.pushed == 1
    pushes = sink.of_type("newPost")
    assert len(pushes) == 1
    assert pushes[0]["notification"]["postId"] == "p1"
    logged = await hub.notifications("alice")
    assert pushes[0]["notification"]["id"] == logged[0].notification_id


async def test_disconnected_user_still_gets_logged_entry(hub):
    session = hub.connect(RecordingSend())
    await hub.register(session.session_id, "alice")
    await hub.join_topic(session.session_id, "sports")
    hub.disconnect(session.session_id)

    result = await hub.publish(post_fields())
    assert result.pushed == 0
    assert [n.post_id for n in await hub.notifications("alice")] == ["p1"]


async def test_each_session_of_a_user_gets_exactly_one_push(hub):
    sinks = [RecordingSend(), RecordingSend()]
    for sink in sinks:
        session = hub.connect(sink)
        await hub.register(session.session_id, "alice")
        await hub.join_topic(session.session_id, "sports")

    result = await hub.publish(post_fields())
    await settle()

    assert result.pushed == 2
    assert [len(s.of_type("newPost")) for s in sinks] == [1, 1]
    assert len(await hub.notifications("alice")) == 1


async def test_unbound_group_member_is_pushed_but_not_logged(hub):
    sink = RecordingSend()
    session = hub.connect(sink)
    await hub.join_topic(session.session_id, "sports")

    result = await hub.publish(post_fields())
    await settle()

    assert result.subscribers == 0
    assert result.pushed == 1
    assert sink.of_type("newPost")[0]["notification"]["username"] == ""


async def test_persist_failure_aborts_without_side_effects():
    engine, registry, _, metrics = build(content=BrokenContentStore())
    registry.subscribe("alice", "sports")
    with pytest.raises(PersistFailure):
        await engine.publish(make_post())
    assert metrics.get_counter(NOTIFICATIONS_LOGGED) == 0


async def test_persist_timeout_is_a_persist_failure():
    log = InMemoryNotificationLog()
    engine, registry, _, _ = build(content=HangingContentStore(), log=log, store_timeout=0.05)
    registry.subscribe("alice", "sports")
    with pytest.raises(PersistFailure):
        await engine.publish(make_post())
    assert await log.list_for("alice") == []


async def test_append_failure_skips_only_that_subscriber():
    log = FlakyLog(failing=["bad"])
    engine, registry, _, metrics = build(log=log)
    for user in ("alice", "bad", "carol"):
        registry.subscribe(user, "sports")

    result = await engine.publish(make_post())

    assert result.subscribers == 3
    assert result.notified == 2
    assert result.failed == ["bad"]
    assert len(await log.list_for("alice")) == 1
    assert len(await log.list_for("carol")) == 1
    assert metrics.get_counter(NOTIFICATIONS_FAILED) == 1


async def test_append_failure_still_pushes_to_live_sessions():
    log = FlakyLog(failing=["alice"])
    engine, registry, transport, _ = build(log=log)
    sink = RecordingSend()
    session = transport.connect(sink)
    transport.register(session.session_id, "alice")
    registry.subscribe("alice", "sports")

    result = await engine.publish(make_post())
    await settle()

    assert result.failed == ["alice"]
    assert result.notified == 0
    assert result.pushed == 1
    pushes = sink.of_type("newPost")
    assert len(pushes) == 1
    assert pushes[0]["notification"]["username"] == "alice"
    assert await log.list_for("alice") == []
    transport.close_all()


async def test_push_failure_never_reaches_publisher():
    log = InMemoryNotificationLog()
    engine, registry, transport, _ = build(log=log)
    registry.subscribe("alice", "sports")
    broken = transport.connect(FailingSend())
    transport.register(broken.session_id, "alice")

    result = await engine.publish(make_post())
    await settle()

    assert result.notified == 1
    assert broken.closed
    assert len(await log.list_for("alice")) == 1
    transport.close_all()


async def test_subscriber_added_after_snapshot_is_not_notified():
    registry = Registry()
    registry.subscribe("alice", "sports")

    class LateJoinerLog(InMemoryNotificationLog):
        async def append(self, notification):
            registry.subscribe("late", "sports")
            await super().append(notification)

    log = LateJoinerLog()
    engine = FanoutEngine(InMemoryContentStore(), log, registry, Transport(registry))
    result = await engine.publish(make_post())

    assert result.subscribers == 1
    assert len(await log.list_for("alice")) == 1
    assert await log.list_for("late") == []
