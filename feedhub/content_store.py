"""Content store contract and the in-memory backend."""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from feedhub.errors import NotFoundError, ValidationError
from feedhub.fuzzy import score_document, tokenize
from feedhub.models import POST_FIELDS, Post

SEARCH_FIELDS = ("title", "topic", "description")
DEFAULT_SEARCH_LIMIT = 100


def validate_update(post_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Check a partial document: known post fields only, and the id cannot change."""
    if not fields:
        raise ValidationError("update requires at least one field")
    unknown = sorted(set(fields) - set(POST_FIELDS))
    if unknown:
        raise ValidationError(f"unknown post fields: {', '.join(unknown)}")
    if "id" in fields and str(fields["id"]) != post_id:
        raise ValidationError("post id cannot be changed")
    return {k: v for k, v in fields.items() if k != "id"}


class ContentStore(ABC):
    """Persists posts and answers topic and full-text queries. Writes are visible to the next read."""

    async def connect(self) -> None:
        """Provision backing storage. Idempotent."""

    async def close(self) -> None:
        pass

    @abstractmethod
    async def save(self, post: Post) -> None:
        ...

    @abstractmethod
    async def get(self, post_id: str) -> Post:
        ...

    @abstractmethod
    async def update(self, post_id: str, fields: Dict[str, Any]) -> Post:
        ...

    @abstractmethod
    async def delete(self, post_id: str) -> None:
        ...

    @abstractmethod
    async def query_all(self) -> List[Post]:
        ...

    @abstractmethod
    async def query_by_topic(self, topic: str) -> List[Post]:
        ...

    @abstractmethod
    async def search(self, text: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Post]:
        """Rank posts by fuzzy relevance across title, topic and description."""


class InMemoryContentStore(ContentStore):
    """Dict-backed store; search mimics a fuzzy multi_match."""

    def __init__(self) -> None:
        self._posts: Dict[str, Post] = {}
        self._lock = threading.Lock()

    async def save(self, post: Post) -> None:
        with self._lock:
            self._posts[post.id] = post

    async def get(self, post_id: str) -> Post:
        with self._lock:
            post = self._posts.get(post_id)
        if post is None:
            raise NotFoundError(f"post {post_id!r} not found")
        return post

    async def update(self, post_id: str, fields: Dict[str, Any]) -> Post:
        changes = validate_update(post_id, fields)
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                raise NotFoundError(f"post {post_id!r} not found")
            updated = post.merged(changes)
            self._posts[post_id] = updated
        return updated

    async def delete(self, post_id: str) -> None:
        with self._lock:
            if self._posts.pop(post_id, None) is None:
                raise NotFoundError(f"post {post_id!r} not found")

    async def query_all(self) -> List[Post]:
        with self._lock:
            return list(self._posts.values())

    async def query_by_topic(self, topic: str) -> List[Post]:
        wanted = set(tokenize(topic))
        with self._lock:
            posts = list(self._posts.values())
        return [p for p in posts if wanted & set(tokenize(p.topic))]

    async def search(self, text: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Post]:
        with self._lock:
            posts = list(self._posts.values())
        scored = []
        for order, post in enumerate(posts):
            fields = {name: getattr(post, name) or "" for name in SEARCH_FIELDS}
            score = score_document(text, fields)
            if score > 0:
                scored.append((-score, order, post))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [post for _, _, post in scored[:limit]]
