"""Post and Notification records plus the result of a publish."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Wire/document name -> attribute name
POST_FIELDS = {
    "id": "id",
    "title": "title",
    "topic": "topic",
    "description": "description",
    "author": "author",
    "dateCreated": "date_created",
    "image": "image",
}
REQUIRED_POST_FIELDS = ("id", "title", "topic", "description", "author", "dateCreated")

NOTIFICATION_TEMPLATE = "New post in {topic} posted by {author}: {title}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class Post:
    """A published, topic-tagged item."""

    id: str
    title: str
    topic: str
    description: str
    author: str
    date_created: str
    image: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        """Build from a wire/document dict (camelCase keys)."""
        kwargs = {attr: data.get(key) for key, attr in POST_FIELDS.items()}
        for key in REQUIRED_POST_FIELDS:
            attr = POST_FIELDS[key]
            kwargs[attr] = "" if kwargs[attr] is None else str(kwargs[attr])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for transport and storage."""
        return {key: getattr(self, attr) for key, attr in POST_FIELDS.items()}

    def merged(self, fields: Dict[str, Any]) -> "Post":
        """Return a copy with a partial document merged in."""
        data = self.to_dict()
        data.update(fields)
        return Post.from_dict(data)


@dataclass
class Notification:
    """One logged notice for one recipient about one post."""

    username: str
    message: str
    post_id: str
    topic: str
    timestamp: datetime = field(default_factory=utc_now)
    read: bool = False
    notification_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def for_post(cls, username: str, post: Post, timestamp: datetime) -> "Notification":
        message = NOTIFICATION_TEMPLATE.format(topic=post.topic, author=post.author, title=post.title)
        return cls(
            username=username,
            message=message,
            post_id=post.id,
            topic=post.topic,
            timestamp=timestamp,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], notification_id: Optional[str] = None) -> "Notification":
        return cls(
            username=data["username"],
            message=data["message"],
            post_id=data["postId"],
            topic=data["topic"],
            timestamp=_parse_ts(data["timestamp"]),
            read=bool(data.get("read", False)),
            notification_id=notification_id or data.get("id") or uuid.uuid4().hex,
        )

    def to_document(self) -> Dict[str, Any]:
        """Stored fields (the id lives outside the document)."""
        return {
            "username": self.username,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "postId": self.post_id,
            "topic": self.topic,
            "read": self.read,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_document()
        d["id"] = self.notification_id
        return d


@dataclass
class PublishResult:
    """Outcome of one fan-out: how many subscribers were processed and what reached them."""

    post: Post
    subscribers: int
    notified: int
    pushed: int
    failed: List[str] = field(default_factory=list)
