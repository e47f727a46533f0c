"""Metrics for observability (publish counts, fan-out outcomes, live sessions)."""

import threading
from typing import Dict

POSTS_PUBLISHED = "posts_published"
NOTIFICATIONS_LOGGED = "notifications_logged"
NOTIFICATIONS_FAILED = "notifications_failed"
PUSHES_DELIVERED = "pushes_delivered"
PUSHES_DROPPED = "pushes_dropped"
SESSIONS_CONNECTED = "sessions_connected"
SESSIONS_LIVE = "sessions_live"


class Metrics:
    """In-memory metrics collector shared by the fan-out engine and transport."""

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def set_gauge(self, name: str, value: int) -> None:
        """Set a gauge value."""
        with self._lock:
            self._gauges[name] = value

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_gauge(self, name: str) -> int:
        with self._lock:
            return self._gauges.get(name, 0)

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        """Return a snapshot of all metrics."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
            }
