"""Elasticsearch backends for posts, notifications and subscriptions.

All writes use ``refresh=True`` so that a read issued right after (by the fan-out engine
or a client listing its notifications) sees them.
"""

import hashlib
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from elasticsearch import (
    ApiError,
    AsyncElasticsearch,
    BadRequestError,
    NotFoundError as ESNotFoundError,
    TransportError,
)
from elasticsearch.helpers import async_scan

from feedhub.content_store import DEFAULT_SEARCH_LIMIT, SEARCH_FIELDS, ContentStore, validate_update
from feedhub.errors import NotFoundError, StoreUnavailable
from feedhub.models import Notification, Post
from feedhub.notification_log import NotificationLog
from feedhub.observability import get_logger
from feedhub.subscriptions import SubscriptionStore

logger = get_logger("feedhub.elastic")

POSTS_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "title": {"type": "text"},
        "topic": {"type": "text"},
        "description": {"type": "text"},
        "author": {"type": "keyword"},
        "dateCreated": {"type": "keyword"},
        "image": {"type": "keyword"},
    }
}

NOTIFICATIONS_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "username": {"type": "keyword"},
        "message": {"type": "text"},
        "timestamp": {"type": "date"},
        "postId": {"type": "keyword"},
        "topic": {"type": "keyword"},
        "read": {"type": "boolean"},
    }
}

SUBSCRIPTIONS_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "username": {"type": "keyword"},
        "topic": {"type": "keyword"},
    }
}

DEFAULT_LIST_SIZE = 1000


def create_client(url: str, request_timeout: float) -> AsyncElasticsearch:
    return AsyncElasticsearch(url, request_timeout=request_timeout)


def _error_type(error: ApiError) -> Optional[str]:
    body = error.body if isinstance(error.body, dict) else {}
    err = body.get("error")
    return err.get("type") if isinstance(err, dict) else None


@contextmanager
def _store_errors(action: str, not_found: Optional[str] = None) -> Iterator[None]:
    """Translate client errors: 404 to NotFoundError when not_found is given, the rest to StoreUnavailable."""
    try:
        yield
    except ESNotFoundError as e:
        if not_found is not None:
            raise NotFoundError(not_found) from e
        logger.error("store_error", extra={"action": action, "error": str(e)})
        raise StoreUnavailable(f"{action} failed: index missing") from e
    except (ApiError, TransportError) as e:
        logger.error("store_error", extra={"action": action, "error": str(e)})
        raise StoreUnavailable(f"{action} failed: {e}") from e


async def ensure_index(client: AsyncElasticsearch, name: str, mappings: Dict[str, Any]) -> bool:
    """Make sure index name exists with mappings. Returns True if it was created, False if already there."""
    with _store_errors(f"ensure index {name}"):
        if await client.indices.exists(index=name):
            logger.info("index_exists", extra={"index": name})
            return False
        try:
            await client.indices.create(index=name, mappings=mappings)
        except BadRequestError as e:
            # Lost a creation race with another process: the index is there.
            if _error_type(e) == "resource_already_exists_exception":
                logger.info("index_exists", extra={"index": name})
                return False
            raise
    logger.info("index_created", extra={"index": name})
    return True


class ElasticsearchContentStore(ContentStore):
    def __init__(self, client: AsyncElasticsearch, index: str, list_size: int = DEFAULT_LIST_SIZE) -> None:
        self._client = client
        self._index = index
        self._list_size = list_size

    async def connect(self) -> None:
        await ensure_index(self._client, self._index, POSTS_MAPPINGS)

    async def save(self, post: Post) -> None:
        with _store_errors("save post"):
            await self._client.index(index=self._index, id=post.id, document=post.to_dict(), refresh=True)

    async def get(self, post_id: str) -> Post:
        with _store_errors("get post", not_found=f"post {post_id!r} not found"):
            resp = await self._client.get(index=self._index, id=post_id)
        return Post.from_dict(resp["_source"])

    async def update(self, post_id: str, fields: Dict[str, Any]) -> Post:
        changes = validate_update(post_id, fields)
        with _store_errors("update post", not_found=f"post {post_id!r} not found"):
            await self._client.update(index=self._index, id=post_id, doc=changes, refresh=True)
        return await self.get(post_id)

    async def delete(self, post_id: str) -> None:
        with _store_errors("delete post", not_found=f"post {post_id!r} not found"):
            await self._client.delete(index=self._index, id=post_id, refresh=True)

    async def query_all(self) -> List[Post]:
        return await self._search({"match_all": {}}, self._list_size)

    async def query_by_topic(self, topic: str) -> List[Post]:
        return await self._search({"match": {"topic": topic}}, self._list_size)

    async def search(self, text: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Post]:
        query = {
            "multi_match": {
                "query": text,
                "fields": list(SEARCH_FIELDS),
                "fuzziness": "AUTO",
            }
        }
        return await self._search(query, limit)

    async def _search(self, query: Dict[str, Any], size: int) -> List[Post]:
        with _store_errors("search posts"):
            resp = await self._client.search(index=self._index, query=query, size=size)
        return [Post.from_dict(hit["_source"]) for hit in resp["hits"]["hits"]]


class ElasticsearchNotificationLog(NotificationLog):
    def __init__(self, client: AsyncElasticsearch, index: str, list_size: int = DEFAULT_LIST_SIZE) -> None:
        self._client = client
        self._index = index
        self._list_size = list_size

    async def connect(self) -> None:
        await ensure_index(self._client, self._index, NOTIFICATIONS_MAPPINGS)

    async def append(self, notification: Notification) -> None:
        with _store_errors("append notification"):
            await self._client.index(
                index=self._index,
                id=notification.notification_id,
                document=notification.to_document(),
                refresh=True,
            )

    async def list_for(self, username: str) -> List[Notification]:
        """Whole backlog for username, newest first, scrolled in pages of list_size."""
        notifications: List[Notification] = []
        with _store_errors("list notifications"):
            async for hit in async_scan(
                self._client,
                index=self._index,
                query={
                    "query": {"term": {"username": username}},
                    "sort": [{"timestamp": {"order": "desc"}}],
                },
                preserve_order=True,
                size=self._list_size,
            ):
                notifications.append(Notification.from_dict(hit["_source"], hit["_id"]))
        return notifications

    async def clear_for(self, username: str) -> int:
        with _store_errors("clear notifications"):
            resp = await self._client.delete_by_query(
                index=self._index,
                query={"term": {"username": username}},
                refresh=True,
            )
        return int(resp["deleted"])


def subscription_doc_id(username: str, topic: str) -> str:
    return hashlib.sha1(f"{username}\n{topic}".encode("utf-8")).hexdigest()


class ElasticsearchSubscriptionStore(SubscriptionStore):
    def __init__(self, client: AsyncElasticsearch, index: str) -> None:
        self._client = client
        self._index = index

    async def connect(self) -> None:
        await ensure_index(self._client, self._index, SUBSCRIPTIONS_MAPPINGS)

    async def add(self, username: str, topic: str) -> None:
        with _store_errors("add subscription"):
            await self._client.index(
                index=self._index,
                id=subscription_doc_id(username, topic),
                document={"username": username, "topic": topic},
                refresh=True,
            )

    async def remove(self, username: str, topic: str) -> None:
        try:
            with _store_errors("remove subscription", not_found="subscription not found"):
                await self._client.delete(
                    index=self._index,
                    id=subscription_doc_id(username, topic),
                    refresh=True,
                )
        except NotFoundError:
            pass

    async def load_all(self) -> List[Tuple[str, str]]:
        pairs: List[Tuple[str, str]] = []
        with _store_errors("load subscriptions"):
            async for hit in async_scan(self._client, index=self._index, query={"query": {"match_all": {}}}):
                src = hit["_source"]
                pairs.append((src["username"], src["topic"]))
        return pairs
