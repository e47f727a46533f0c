"""In-memory subscription registry: user <-> topic subscriptions and session <-> topic groups.

Locking discipline: ``Registry._lock`` guards the user and session maps and is
always taken before a ``Topic`` lock, never after. Every read returns a copied
snapshot so callers iterate and do I/O without holding any lock.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from feedhub.errors import NotFoundError, ValidationError, require_text
from feedhub.observability import get_logger
from feedhub.topic import Topic

logger = get_logger("feedhub.registry")


@dataclass
class _SessionEntry:
    username: Optional[str] = None
    topics: Set[str] = field(default_factory=set)


class Registry:
    """Authoritative owner of subscription and session-binding state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._topics: Dict[str, Topic] = {}
        self._user_topics: Dict[str, Set[str]] = {}
        self._sessions: Dict[str, _SessionEntry] = {}
        self._user_sessions: Dict[str, Set[str]] = {}

    # ---- Subscriptions ----

    def subscribe(self, username: str, topic: str) -> bool:
        """Record durable interest of username in topic. Idempotent; returns True if it was new."""
        username = require_text(username, "username")
        topic = require_text(topic, "topic")
        with self._lock:
            created = self._get_or_create_topic(topic).subscribe(username)
            self._user_topics.setdefault(username, set()).add(topic)
        if created:
            logger.info("subscribed", extra={"username": username, "topic": topic})
        return created

    def unsubscribe(self, username: str, topic: str) -> bool:
        """
        Drop the (username, topic) subscription and pull the user's sessions out of that group.
        Idempotent; returns True if a subscription was removed.
        """
        username = require_text(username, "username")
        topic = require_text(topic, "topic")
        with self._lock:
            t = self._topics.get(topic)
            removed = t.unsubscribe(username) if t is not None else False
            topics = self._user_topics.get(username)
            if topics is not None:
                topics.discard(topic)
                if not topics:
                    del self._user_topics[username]
            for session_id in self._user_sessions.get(username, ()):
                entry = self._sessions[session_id]
                if topic in entry.topics:
                    entry.topics.discard(topic)
                    if t is not None:
                        t.leave(session_id)
            self._discard_topic_if_empty(topic)
        if removed:
            logger.info("unsubscribed", extra={"username": username, "topic": topic})
        return removed

    def topics_of(self, username: str) -> Set[str]:
        with self._lock:
            return set(self._user_topics.get(username, ()))

    def subscribers_of(self, topic: str) -> Set[str]:
        """Snapshot of the users subscribed to topic at this instant."""
        with self._lock:
            t = self._topics.get(topic)
        if t is None:
            return set()
        return t.get_subscribers()

    def load(self, pairs: List[Tuple[str, str]]) -> int:
        """Replay persisted (username, topic) pairs; returns how many were new."""
        return sum(1 for username, topic in pairs if self.subscribe(username, topic))

    # ---- Sessions ----

    def add_session(self, session_id: str) -> None:
        session_id = require_text(session_id, "session_id")
        with self._lock:
            self._sessions.setdefault(session_id, _SessionEntry())

    def bind_session(self, session_id: str, username: str) -> bool:
        """
        Record which user owns a session. Set once: binding again to the same name is a no-op,
        to a different name is a ValidationError. Topics joined before binding become the
        user's subscriptions. Returns True if the binding was new.
        """
        username = require_text(username, "username")
        with self._lock:
            entry = self._get_session(session_id)
            if entry.username == username:
                return False
            if entry.username is not None:
                raise ValidationError(f"session already registered as {entry.username!r}")
            entry.username = username
            self._user_sessions.setdefault(username, set()).add(session_id)
            for topic in entry.topics:
                self._get_or_create_topic(topic).subscribe(username)
                self._user_topics.setdefault(username, set()).add(topic)
        logger.info("session_bound", extra={"session_id": session_id, "username": username})
        return True

    def join_topic(self, session_id: str, topic: str) -> None:
        """Put the session in the topic's broadcast group. Does not create a subscription."""
        topic = require_text(topic, "topic")
        with self._lock:
            entry = self._get_session(session_id)
            entry.topics.add(topic)
            self._get_or_create_topic(topic).join(session_id)

    def leave_topic(self, session_id: str, topic: str) -> None:
        topic = require_text(topic, "topic")
        with self._lock:
            entry = self._get_session(session_id)
            entry.topics.discard(topic)
            t = self._topics.get(topic)
            if t is not None:
                t.leave(session_id)
            self._discard_topic_if_empty(topic)

    def drop_session(self, session_id: str) -> bool:
        """Forget a session and its group memberships. Subscriptions are untouched."""
        with self._lock:
            entry = self._sessions.pop(session_id, None)
            if entry is None:
                return False
            for topic in entry.topics:
                t = self._topics.get(topic)
                if t is not None:
                    t.leave(session_id)
                self._discard_topic_if_empty(topic)
            if entry.username is not None:
                owned = self._user_sessions.get(entry.username)
                if owned is not None:
                    owned.discard(session_id)
                    if not owned:
                        del self._user_sessions[entry.username]
        return True

    def sessions_of(self, username: str) -> Set[str]:
        with self._lock:
            return set(self._user_sessions.get(username, ()))

    def sessions_in(self, topic: str) -> Set[str]:
        with self._lock:
            t = self._topics.get(topic)
        if t is None:
            return set()
        return t.get_sessions()

    def username_of(self, session_id: str) -> Optional[str]:
        with self._lock:
            entry = self._sessions.get(session_id)
            return entry.username if entry is not None else None

    def session_topics(self, session_id: str) -> Set[str]:
        with self._lock:
            return set(self._get_session(session_id).topics)

    # ---- Stats ----

    def topic_count(self) -> int:
        with self._lock:
            return len(self._topics)

    def user_count(self) -> int:
        with self._lock:
            return len(self._user_topics)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def topic_stats(self) -> Dict[str, Dict[str, int]]:
        """Return { topic_name: { subscribers, sessions } } for the stats endpoint."""
        with self._lock:
            topics = list(self._topics.values())
        return {
            t.name: {"subscribers": t.subscriber_count, "sessions": t.session_count}
            for t in topics
        }

    # ---- Internal (caller holds self._lock) ----

    def _get_or_create_topic(self, name: str) -> Topic:
        if name not in self._topics:
            self._topics[name] = Topic(name)
        return self._topics[name]

    def _discard_topic_if_empty(self, name: str) -> None:
        t = self._topics.get(name)
        if t is not None and t.is_empty:
            del self._topics[name]

    def _get_session(self, session_id: str) -> _SessionEntry:
        entry = self._sessions.get(session_id)
        if entry is None:
            raise NotFoundError(f"session {session_id!r} not found")
        return entry
