"""Notification log contract and the in-memory backend."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from feedhub.models import Notification


class NotificationLog(ABC):
    """Append-only per-user backlog. A list issued right after an append sees it."""

    async def connect(self) -> None:
        """Provision backing storage. Idempotent."""

    async def close(self) -> None:
        pass

    @abstractmethod
    async def append(self, notification: Notification) -> None:
        ...

    @abstractmethod
    async def list_for(self, username: str) -> List[Notification]:
        """Notifications for username, newest first."""

    @abstractmethod
    async def clear_for(self, username: str) -> int:
        """Delete every notification for username; returns how many were removed."""


class InMemoryNotificationLog(NotificationLog):
    def __init__(self) -> None:
        self._entries: Dict[str, List[Tuple[int, Notification]]] = {}
        self._seq = 0
        self._lock = threading.Lock()

    async def append(self, notification: Notification) -> None:
        with self._lock:
            self._seq += 1
            self._entries.setdefault(notification.username, []).append((self._seq, notification))

    async def list_for(self, username: str) -> List[Notification]:
        with self._lock:
            entries = list(self._entries.get(username, ()))
        entries.sort(key=lambda e: (e[1].timestamp, e[0]), reverse=True)
        return [n for _, n in entries]

    async def clear_for(self, username: str) -> int:
        with self._lock:
            removed = self._entries.pop(username, [])
        return len(removed)
