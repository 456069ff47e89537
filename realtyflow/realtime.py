"""
Real-time push over websockets.

Clients connect to `/ws?userId=...&userType=agent|admin`. The registry keeps
each websocket together with the event loop that owns it, so notifications
can be pushed from anywhere: request handlers, background tasks running in
the threadpool, or Celery workers sharing the process.
"""

import asyncio
import threading
from dataclasses import dataclass
from functools import partial
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from realtyflow.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Real-time"])


@dataclass(eq=False)
class Connection:
    websocket: Any
    loop: asyncio.AbstractEventLoop
    user_id: str
    user_type: str


class ConnectionRegistry:
    """In-process registry of connected users."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: list[Connection] = []
        # Sends in flight; held so tasks are not collected before they run.
        self._pending: set = set()

    def register(self, websocket, user_id: str, user_type: str,
                 loop: Optional[asyncio.AbstractEventLoop] = None) -> Connection:
        conn = Connection(websocket, loop or asyncio.get_running_loop(), str(user_id), user_type)
        with self._lock:
            self._connections.append(conn)
        logger.info("realtime_connected", user_id=conn.user_id, user_type=user_type)
        return conn

    def unregister(self, conn: Connection):
        with self._lock:
            if conn in self._connections:
                self._connections.remove(conn)
        logger.info("realtime_disconnected", user_id=conn.user_id, user_type=conn.user_type)

    def connected_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def connected_users(self) -> list[str]:
        with self._lock:
            return sorted({c.user_id for c in self._connections})

    def notify_user(self, user_id, event: str, data: Any) -> int:
        return self._push(lambda c: c.user_id == str(user_id), event, data)

    def notify_user_type(self, user_type: str, event: str, data: Any) -> int:
        return self._push(lambda c: c.user_type == user_type, event, data)

    def notify_all(self, event: str, data: Any) -> int:
        return self._push(lambda c: True, event, data)

    def _push(self, match, event: str, data: Any) -> int:
        """Schedule a send on every matching connection. Returns how many were targeted."""
        with self._lock:
            targets = [c for c in self._connections if match(c)]

        message = {"event": event, "data": data}
        for conn in targets:
            if conn.loop.is_closed():
                self.unregister(conn)
                continue
            coro = conn.websocket.send_json(message)
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is conn.loop:
                pending = running.create_task(coro)
            else:
                pending = asyncio.run_coroutine_threadsafe(coro, conn.loop)
            with self._lock:
                self._pending.add(pending)
            pending.add_done_callback(partial(self._sent, conn, event))

        logger.debug("realtime_event_sent", event_name=event, recipients=len(targets))
        return len(targets)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _sent(self, conn: Connection, event: str, pending):
        with self._lock:
            self._pending.discard(pending)
        if pending.cancelled():
            return
        error = pending.exception()
        if error is not None:
            logger.warning(
                "realtime_send_failed",
                user_id=conn.user_id,
                event_name=event,
                error=str(error),
            )


registry = ConnectionRegistry()


def get_registry() -> ConnectionRegistry:
    return registry


# WS /ws
# Gets: query params userId, userType (agent|admin)
# Returns: stream of {"event": str, "data": object} messages
# Example:
#   websocat 'ws://localhost:8000/ws?userId=3&userType=agent'
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, userId: str, userType: str = "agent"):
    """Hold a websocket open for pushed events."""
    await websocket.accept()
    conn = registry.register(websocket, userId, userType)
    try:
        while True:
            # Client messages are ignored; receiving keeps the socket open
            # and surfaces disconnects.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(conn)
