"""Fan-out engine: persist a post, then log and push one notification per subscriber."""

import asyncio
from datetime import datetime
from typing import Optional, Set, Tuple

from feedhub.content_store import ContentStore
from feedhub.errors import PersistFailure, StoreUnavailable
from feedhub.models import Notification, Post, PublishResult, utc_now
from feedhub.notification_log import NotificationLog
from feedhub.observability import get_logger
from feedhub.observability.metrics import (
    Metrics,
    NOTIFICATIONS_FAILED,
    NOTIFICATIONS_LOGGED,
    POSTS_PUBLISHED,
)
from feedhub.protocol import ws_new_post, ws_ts
from feedhub.registry import Registry
from feedhub.transport import Transport

logger = get_logger("feedhub.fanout")


class FanoutEngine:
    """
    Ordering per publish: save post -> snapshot subscribers -> per subscriber (concurrently)
    append to the log, then push to that user's sessions. Sessions that only joined the
    topic group get the push without a log entry. No session is pushed twice.
    """

    def __init__(
        self,
        content: ContentStore,
        log: NotificationLog,
        registry: Registry,
        transport: Transport,
        metrics: Optional[Metrics] = None,
        store_timeout: float = 5.0,
    ) -> None:
        self._content = content
        self._log = log
        self._registry = registry
        self._transport = transport
        self._metrics = metrics or Metrics()
        self._store_timeout = store_timeout

    async def publish(self, post: Post) -> PublishResult:
        try:
            await asyncio.wait_for(self._content.save(post), timeout=self._store_timeout)
        except asyncio.TimeoutError as e:
            raise PersistFailure(f"saving post {post.id!r} timed out") from e
        except StoreUnavailable as e:
            raise PersistFailure(f"saving post {post.id!r} failed: {e.message}") from e
        self._metrics.increment(POSTS_PUBLISHED)

        subscribers = sorted(self._registry.subscribers_of(post.topic))
        published_at = utc_now()
        logger.info(
            "publishing",
            extra={"post_id": post.id, "topic": post.topic, "subscriber_count": len(subscribers)},
        )

        outcomes = await asyncio.gather(
            *(self._notify(username, post, published_at) for username in subscribers)
        )

        failed = [username for username, (logged, _, _) in zip(subscribers, outcomes) if not logged]
        pushed = sum(delivered for _, _, delivered in outcomes)
        covered: Set[str] = set()
        for _, sessions, _ in outcomes:
            covered |= sessions

        ts = ws_ts()
        for session_id in self._registry.sessions_in(post.topic) - covered:
            username = self._registry.username_of(session_id)
            if username in subscribers:
                continue
            notification = Notification.for_post(username or "", post, published_at)
            pushed += self._transport.broadcast_sessions([session_id], ws_new_post(notification.to_dict(), ts))

        return PublishResult(
            post=post,
            subscribers=len(subscribers),
            notified=len(subscribers) - len(failed),
            pushed=pushed,
            failed=failed,
        )

    async def _notify(self, username: str, post: Post, published_at: datetime) -> Tuple[bool, Set[str], int]:
        """Log then push for one subscriber. A failed append is skipped; the push still goes out.

        Returns (logged, sessions of the user, sessions pushed).
        """
        notification = Notification.for_post(username, post, published_at)
        logged = True
        try:
            await asyncio.wait_for(self._log.append(notification), timeout=self._store_timeout)
        except Exception as e:
            logged = False
            self._metrics.increment(NOTIFICATIONS_FAILED)
            logger.warning(
                "notification_append_failed",
                extra={"username": username, "post_id": post.id, "error": str(e) or type(e).__name__},
            )
        else:
            self._metrics.increment(NOTIFICATIONS_LOGGED)

        sessions = self._registry.sessions_of(username)
        delivered = self._transport.broadcast_sessions(sessions, ws_new_post(notification.to_dict(), ws_ts()))
        return logged, sessions, delivered
