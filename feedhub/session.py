"""Live session: per-connection bounded queue drained to the socket by a task."""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from feedhub.errors import PushUnavailable
from feedhub.observability import get_logger

SendFn = Callable[[Dict[str, Any]], Awaitable[None]]
ClosedFn = Callable[["Session"], None]

DEFAULT_QUEUE_MAX_SIZE = 1024


class Session:
    """One real-time connection. push() never blocks; a drain task performs the actual sends."""

    def __init__(
        self,
        send: SendFn,
        session_id: Optional[str] = None,
        queue_max_size: int = DEFAULT_QUEUE_MAX_SIZE,
        push_timeout: float = 2.0,
        on_closed: Optional[ClosedFn] = None,
    ) -> None:
        self._session_id = session_id or uuid.uuid4().hex
        self._send = send
        self._push_timeout = push_timeout
        self._on_closed = on_closed
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_max_size))
        self._drain_task: Optional[asyncio.Task] = None
        self._closed = False
        self._logger = get_logger("feedhub.session")

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, payload: Dict[str, Any]) -> None:
        """Enqueue a payload. On a full queue drop the oldest. Raises PushUnavailable if closed."""
        if self._closed:
            raise PushUnavailable(f"session {self._session_id} is closed")
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            try:
                dropped = self._queue.get_nowait()
                self._queue.put_nowait(payload)
                self._logger.warning(
                    "queue_full_dropped_oldest",
                    extra={"session_id": self._session_id, "dropped_type": dropped.get("type")},
                )
            except (asyncio.QueueFull, asyncio.QueueEmpty):
                raise PushUnavailable(f"session {self._session_id} queue overflow")

    async def drain_loop(self) -> None:
        """Send queued payloads until closed. A failed or slow send closes the session."""
        while not self._closed:
            payload = await self._queue.get()
            try:
                await asyncio.wait_for(self._send(payload), timeout=self._push_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.info(
                    "send_failed",
                    extra={"session_id": self._session_id, "error": str(e)},
                )
                self.close()
                break

    def start_drain(self) -> None:
        """Start the drain task on the running loop (idempotent)."""
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self.drain_loop())

    def close(self) -> None:
        """Mark closed, stop draining and notify the owner once."""
        if self._closed:
            return
        self._closed = True
        task = self._drain_task
        self._drain_task = None
        if task is not None and task is not _current_task():
            task.cancel()
        if self._on_closed is not None:
            self._on_closed(self)

    def __repr__(self) -> str:
        return f"Session(id={self._session_id!r}, closed={self._closed})"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
