"""Topic: the per-topic lock plus its subscriber usernames and joined session ids."""

import threading
from typing import Set


class Topic:
    """In-memory named channel; holds durable subscribers and live broadcast-group sessions."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._subscribers: Set[str] = set()
        self._sessions: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._subscribers and not self._sessions

    def subscribe(self, username: str) -> bool:
        """Add a subscriber; returns False if already present."""
        with self._lock:
            if username in self._subscribers:
                return False
            self._subscribers.add(username)
            return True

    def unsubscribe(self, username: str) -> bool:
        """Remove a subscriber; returns False if it was not present."""
        with self._lock:
            if username not in self._subscribers:
                return False
            self._subscribers.discard(username)
            return True

    def get_subscribers(self) -> Set[str]:
        """Return a copy of the subscriber set (under lock)."""
        with self._lock:
            return set(self._subscribers)

    def join(self, session_id: str) -> None:
        with self._lock:
            self._sessions.add(session_id)

    def leave(self, session_id: str) -> None:
        with self._lock:
            self._sessions.discard(session_id)

    def get_sessions(self) -> Set[str]:
        """Return a copy of the joined session ids (under lock)."""
        with self._lock:
            return set(self._sessions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Topic):
            return False
        return self._name == other._name

    def __hash__(self) -> int:
        return hash(self._name)

    def __repr__(self) -> str:
        return f"Topic(name={self._name!r}, subscribers={len(self._subscribers)}, sessions={len(self._sessions)})"
