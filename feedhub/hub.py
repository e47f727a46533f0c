"""FeedHub: wires the stores, registry, transport and fan-out engine behind one object."""

import asyncio
from typing import Any, Awaitable, Dict, List, Optional, Set, Tuple, TypeVar

from feedhub.assets import LocalAssetStore
from feedhub.config import BACKEND_ELASTICSEARCH, Settings
from feedhub.content_store import ContentStore, InMemoryContentStore
from feedhub.errors import PersistFailure, StoreUnavailable, ValidationError, require_text
from feedhub.fanout import FanoutEngine
from feedhub.models import REQUIRED_POST_FIELDS, Notification, Post, PublishResult
from feedhub.notification_log import InMemoryNotificationLog, NotificationLog
from feedhub.observability import Metrics, get_logger
from feedhub.registry import Registry
from feedhub.replies import ReplyGenerator
from feedhub.session import SendFn, Session
from feedhub.subscriptions import InMemorySubscriptionStore, SubscriptionStore
from feedhub.transport import Transport

logger = get_logger("feedhub.hub")

T = TypeVar("T")


class FeedHub:
    """Composition root. Every store call goes through a bounded timeout."""

    def __init__(
        self,
        settings: Settings,
        content: Optional[ContentStore] = None,
        log: Optional[NotificationLog] = None,
        subscriptions: Optional[SubscriptionStore] = None,
        replies: Optional[ReplyGenerator] = None,
        es_client: Any = None,
    ) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.registry = Registry()
        self.content = content or InMemoryContentStore()
        self.log = log or InMemoryNotificationLog()
        self.subscriptions = subscriptions or InMemorySubscriptionStore()
        self.assets = LocalAssetStore(settings.upload_dir, settings.public_base_url)
        self.replies = replies or ReplyGenerator(
            settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
        )
        self.transport = Transport(
            self.registry,
            self.metrics,
            queue_max_size=settings.session_queue_max_size,
            push_timeout=settings.push_timeout_sec,
        )
        self.fanout = FanoutEngine(
            self.content,
            self.log,
            self.registry,
            self.transport,
            self.metrics,
            store_timeout=settings.store_timeout_sec,
        )
        self._es_client = es_client
        self._heartbeat_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeedHub":
        """Pick store backends from settings."""
        if settings.store_backend != BACKEND_ELASTICSEARCH:
            return cls(settings)
        from feedhub.elastic import (
            ElasticsearchContentStore,
            ElasticsearchNotificationLog,
            ElasticsearchSubscriptionStore,
            create_client,
        )

        client = create_client(settings.elasticsearch_url, settings.store_timeout_sec)
        return cls(
            settings,
            content=ElasticsearchContentStore(client, settings.posts_index),
            log=ElasticsearchNotificationLog(client, settings.notifications_index),
            subscriptions=ElasticsearchSubscriptionStore(client, settings.subscriptions_index),
            es_client=client,
        )

    # ---- Lifecycle ----

    async def start(self) -> None:
        """Provision indexes, replay persisted subscriptions and start the heartbeat."""
        self.assets.ensure_dir()
        for store in (self.content, self.log, self.subscriptions):
            await self._bounded(store.connect(), "provision store")
        pairs = await self._bounded(self.subscriptions.load_all(), "load subscriptions")
        loaded = self.registry.load(pairs)
        logger.info("hub_started", extra={"backend": self.settings.store_backend, "subscriptions": loaded})
        if self.settings.heartbeat_interval_sec > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        self.transport.close_all()
        for store in (self.content, self.log, self.subscriptions):
            await store.close()
        await self.replies.aclose()
        if self._es_client is not None:
            await self._es_client.close()
        logger.info("hub_stopped")

    async def _heartbeat_loop(self) -> None:
        """Periodically ping every live session; dead sockets surface as failed sends and get dropped."""
        interval = self.settings.heartbeat_interval_sec
        while True:
            await asyncio.sleep(interval)
            self.transport.heartbeat()

    async def _bounded(self, aw: Awaitable[T], action: str) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self.settings.store_timeout_sec)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"{action} timed out") from e

    # ---- Posts ----

    async def publish(
        self,
        fields: Dict[str, Any],
        image: Optional[Tuple[str, bytes]] = None,
    ) -> PublishResult:
        """Validate, store the optional (filename, data) image, then fan out.

        Nothing is written when a required field is missing; the image is removed
        again if the post itself could not be saved.
        """
        missing = [k for k in REQUIRED_POST_FIELDS if not str(fields.get(k) or "").strip()]
        if missing:
            raise ValidationError(f"missing required fields: {', '.join(missing)}")
        image_url = None
        if image is not None:
            filename, data = image
            image_url = await self.assets.save(filename, data)
        post = Post.from_dict({**fields, "image": image_url})
        try:
            return await self.fanout.publish(post)
        except PersistFailure:
            if image_url is not None:
                await self.assets.delete(image_url)
            raise

    async def list_posts(self) -> List[Post]:
        return await self._bounded(self.content.query_all(), "list posts")

    async def posts_by_topic(self, topic: str) -> List[Post]:
        topic = require_text(topic, "topic")
        return await self._bounded(self.content.query_by_topic(topic), "list posts by topic")

    async def update_post(self, post_id: str, fields: Dict[str, Any]) -> Post:
        return await self._bounded(self.content.update(post_id, fields), "update post")

    async def delete_post(self, post_id: str) -> None:
        await self._bounded(self.content.delete(post_id), "delete post")

    async def search(self, text: Optional[str]) -> List[Post]:
        text = require_text(text, "search query parameter 'q'")
        return await self._bounded(
            self.content.search(text, limit=self.settings.search_max_results), "search posts"
        )

    # ---- Notifications ----

    async def notifications(self, username: str) -> List[Notification]:
        username = require_text(username, "username")
        return await self._bounded(self.log.list_for(username), "list notifications")

    async def clear_notifications(self, username: str) -> int:
        username = require_text(username, "username")
        return await self._bounded(self.log.clear_for(username), "clear notifications")

    # ---- Subscriptions ----

    async def subscribe(self, username: str, topic: str) -> bool:
        """Register durable interest. Always persists, so a record missed earlier is written now.

        A failed persist rolls back a pair this call created.
        """
        username = require_text(username, "username")
        topic = require_text(topic, "topic")
        created = self.registry.subscribe(username, topic)
        try:
            await self._bounded(self.subscriptions.add(username, topic), "persist subscription")
        except StoreUnavailable:
            if created:
                self.registry.unsubscribe(username, topic)
            raise
        return created

    async def unsubscribe(self, username: str, topic: str) -> bool:
        """Remove the durable record first; the registry only changes once that succeeded."""
        username = require_text(username, "username")
        topic = require_text(topic, "topic")
        await self._bounded(self.subscriptions.remove(username, topic), "remove subscription")
        return self.registry.unsubscribe(username, topic)

    def topics_of(self, username: str) -> List[str]:
        return sorted(self.registry.topics_of(require_text(username, "username")))

    # ---- Sessions ----

    def connect(self, send: SendFn) -> Session:
        return self.transport.connect(send)

    def disconnect(self, session_id: str) -> bool:
        return self.transport.disconnect(session_id)

    async def register(self, session_id: str, username: str) -> bool:
        """Bind a session to a user; topics it joined before binding become persisted subscriptions."""
        before = self.registry.topics_of(username.strip()) if username else set()
        bound = self.transport.register(session_id, username)
        adopted: Set[str] = self.registry.topics_of(username.strip()) - before
        for topic in sorted(adopted):
            try:
                await self._bounded(self.subscriptions.add(username.strip(), topic), "persist subscription")
            except StoreUnavailable as e:
                # The registry keeps the pair; the next subscribe for it retries the write.
                logger.warning("subscription_persist_failed", extra={"username": username, "topic": topic, "error": e.message})
        return bound

    async def join_topic(self, session_id: str, topic: str) -> None:
        """Join the broadcast group; a bound session also subscribes its user."""
        username = self.registry.username_of(session_id)
        if username is not None:
            await self.subscribe(username, topic)
        self.transport.join_topic(session_id, topic)

    async def leave_topic(self, session_id: str, topic: str) -> None:
        username = self.registry.username_of(session_id)
        self.transport.leave_topic(session_id, topic)
        if username is not None:
            await self.unsubscribe(username, topic)
