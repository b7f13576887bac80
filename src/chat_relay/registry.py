# registry.py -- Authoritative set of open WebSocket connections
# In-memory, single-process. The hub only ever reaches connections through here.

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import uuid

from fastapi import WebSocket
from starlette.websockets import WebSocketState

log = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """One client session: transport, liveness state and bounded outbox."""

    def __init__(self, transport: WebSocket, queue_size: int = 256) -> None:
        self.id = uuid.uuid4().hex
        self.transport = transport
        self.state = ConnectionState.CONNECTING
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"<Connection {self.id[:8]} {self.state.value}>"

    @property
    def transport_open(self) -> bool:
        return (
            self.transport.client_state != WebSocketState.DISCONNECTED
            and self.transport.application_state != WebSocketState.DISCONNECTED
        )

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def offer(self, text: str) -> bool:
        """Queue a frame without waiting. False if closed or the outbox is full."""
        if self.state is not ConnectionState.OPEN:
            return False
        try:
            self._outbox.put_nowait(text)
        except asyncio.QueueFull:
            return False
        return True

    async def next_frame(self) -> str:
        return await self._outbox.get()

    def attach_writer(self, task: asyncio.Task) -> None:
        self._writer = task

    def _stop_writer(self) -> None:
        task, self._writer = self._writer, None
        if task is None or task.done():
            return
        # The writer evicts its own connection after a failed send
        if task is not asyncio.current_task():
            task.cancel()


class ConnectionRegistry:
    """Live connections keyed by id, in admission order.

    The lock guards the member dict only and is never held across a send,
    so admit/remove/snapshot are safe from any connection task.
    """

    def __init__(self) -> None:
        self._members: dict[str, Connection] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __contains__(self, conn: object) -> bool:
        if not isinstance(conn, Connection):
            return False
        with self._lock:
            return self._members.get(conn.id) is conn

    def admit(self, transport: WebSocket, queue_size: int = 256) -> Connection:
        conn = Connection(transport, queue_size=queue_size)
        if not conn.transport_open:
            # Closed before we got to it: hand back a dead handle, never a member
            conn.state = ConnectionState.CLOSED
            log.debug("Transport already closed at admission, skipping %s", conn.id)
            return conn
        conn.state = ConnectionState.OPEN
        with self._lock:
            self._members[conn.id] = conn
        return conn

    def remove(self, conn: Connection) -> bool:
        """Evict and close a connection. Returns False if it was not a member."""
        with self._lock:
            removed = self._members.pop(conn.id, None) is not None
        conn.state = ConnectionState.CLOSED
        conn._stop_writer()
        return removed

    def snapshot(self) -> list[Connection]:
        with self._lock:
            return list(self._members.values())
