"""Real-time transport: live sessions, session-to-user binding and topic broadcast groups."""

import threading
from typing import Dict, Iterable, List, Optional

from feedhub.errors import PushUnavailable
from feedhub.observability import get_logger
from feedhub.observability.metrics import (
    Metrics,
    PUSHES_DELIVERED,
    PUSHES_DROPPED,
    SESSIONS_CONNECTED,
    SESSIONS_LIVE,
)
from feedhub.protocol import ws_info, ws_ts
from feedhub.registry import Registry
from feedhub.session import DEFAULT_QUEUE_MAX_SIZE, SendFn, Session

logger = get_logger("feedhub.transport")


class Transport:
    """Owns the live Session objects; membership state is delegated to the Registry."""

    def __init__(
        self,
        registry: Registry,
        metrics: Optional[Metrics] = None,
        queue_max_size: int = DEFAULT_QUEUE_MAX_SIZE,
        push_timeout: float = 2.0,
    ) -> None:
        self._registry = registry
        self._metrics = metrics or Metrics()
        self._queue_max_size = queue_max_size
        self._push_timeout = push_timeout
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def connect(self, send: SendFn) -> Session:
        """Open a session around a send coroutine and start draining it. Needs a running loop."""
        session = Session(
            send,
            queue_max_size=self._queue_max_size,
            push_timeout=self._push_timeout,
            on_closed=self._on_session_closed,
        )
        self._registry.add_session(session.session_id)
        with self._lock:
            self._sessions[session.session_id] = session
            live = len(self._sessions)
        session.start_drain()
        self._metrics.increment(SESSIONS_CONNECTED)
        self._metrics.set_gauge(SESSIONS_LIVE, live)
        logger.info("session_connected", extra={"session_id": session.session_id})
        return session

    def disconnect(self, session_id: str) -> bool:
        """Close and forget a session; its user's subscriptions remain. Idempotent."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            live = len(self._sessions)
        if session is None:
            return False
        session.close()
        self._registry.drop_session(session_id)
        self._metrics.set_gauge(SESSIONS_LIVE, live)
        logger.info("session_disconnected", extra={"session_id": session_id})
        return True

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def register(self, session_id: str, username: str) -> bool:
        return self._registry.bind_session(session_id, username)

    def join_topic(self, session_id: str, topic: str) -> None:
        self._registry.join_topic(session_id, topic)

    def leave_topic(self, session_id: str, topic: str) -> None:
        self._registry.leave_topic(session_id, topic)

    def broadcast(self, username: str, payload: dict) -> int:
        """Push to every live session bound to username. No sessions is a silent no-op."""
        return self.broadcast_sessions(self._registry.sessions_of(username), payload)

    def broadcast_sessions(self, session_ids: Iterable[str], payload: dict) -> int:
        """Push to each listed session; closed or vanished sessions are dropped. Returns deliveries."""
        delivered = 0
        dead: List[str] = []
        for session_id in session_ids:
            session = self.get(session_id)
            if session is None:
                self._metrics.increment(PUSHES_DROPPED)
                continue
            try:
                session.push(payload)
            except PushUnavailable as e:
                self._metrics.increment(PUSHES_DROPPED)
                logger.debug("push_dropped", extra={"session_id": session_id, "error": e.message})
                dead.append(session_id)
                continue
            delivered += 1
        for session_id in dead:
            self.disconnect(session_id)
        if delivered:
            self._metrics.increment(PUSHES_DELIVERED, delivered)
        return delivered

    def heartbeat(self) -> int:
        """Queue an info ping on every session; sessions whose sends fail get dropped by their drain task."""
        with self._lock:
            sessions = list(self._sessions.values())
        payload = ws_info("ping", ws_ts())
        sent = 0
        for session in sessions:
            try:
                session.push(payload)
                sent += 1
            except PushUnavailable:
                self.disconnect(session.session_id)
        return sent

    def close_all(self) -> None:
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.disconnect(session_id)

    def _on_session_closed(self, session: Session) -> None:
        self.disconnect(session.session_id)
