"""Durable (username, topic) subscription records, replayed into the Registry on startup."""

import threading
from abc import ABC, abstractmethod
from typing import List, Set, Tuple


class SubscriptionStore(ABC):
    async def connect(self) -> None:
        """Provision backing storage. Idempotent."""

    async def close(self) -> None:
        pass

    @abstractmethod
    async def add(self, username: str, topic: str) -> None:
        ...

    @abstractmethod
    async def remove(self, username: str, topic: str) -> None:
        ...

    @abstractmethod
    async def load_all(self) -> List[Tuple[str, str]]:
        ...


class InMemorySubscriptionStore(SubscriptionStore):
    """Process-resident only: subscriptions do not survive a restart with this backend."""

    def __init__(self) -> None:
        self._pairs: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

    async def add(self, username: str, topic: str) -> None:
        with self._lock:
            self._pairs.add((username, topic))

    async def remove(self, username: str, topic: str) -> None:
        with self._lock:
            self._pairs.discard((username, topic))

    async def load_all(self) -> List[Tuple[str, str]]:
        with self._lock:
            return sorted(self._pairs)
