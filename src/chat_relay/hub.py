# hub.py -- Broadcast hub: decode inbound envelopes, fan out to every live connection
# Read-snapshot-then-fan-out. Broadcast never awaits a recipient; each connection
# has its own writer task draining a bounded outbox.

from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .config import config
from .events import decode, encode
from .registry import Connection, ConnectionRegistry, ConnectionState

log = logging.getLogger(__name__)

# Transport errors that mean "this peer is gone", on read or on send
_TRANSPORT_ERRORS = (WebSocketDisconnect, RuntimeError, OSError)


class BroadcastHub:
    """Relays chat and typing envelopes to all connections, sender included."""

    def __init__(
        self, registry: ConnectionRegistry | None = None, queue_size: int | None = None
    ) -> None:
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.queue_size = queue_size or config.queue_size

    async def on_connect(self, websocket: WebSocket) -> Connection:
        """Complete the handshake and admit. Nothing is sent to the new client."""
        try:
            await websocket.accept()
        except _TRANSPORT_ERRORS as e:
            # Peer left mid-handshake: dead handle, never a member
            log.debug("Handshake failed: %s", e)
            conn = Connection(websocket, queue_size=self.queue_size)
            conn.state = ConnectionState.CLOSED
            return conn
        conn = self.registry.admit(websocket, queue_size=self.queue_size)
        if conn.state is ConnectionState.OPEN:
            conn.attach_writer(asyncio.create_task(self._write_loop(conn)))
            log.info("Client connected: %s (%d total)", conn.id[:8], len(self.registry))
        return conn

    def on_message(self, conn: Connection, raw: str | bytes) -> int:
        """Decode one frame and broadcast it. Returns the number of recipients queued."""
        envelope = decode(raw)
        if envelope is None:
            log.debug("Ignoring unrecognized frame from %s", conn.id[:8])
            return 0
        return self.broadcast(encode(envelope))

    def on_disconnect(self, conn: Connection) -> None:
        if self.registry.remove(conn):
            log.info("Client disconnected: %s (%d total)", conn.id[:8], len(self.registry))

    def broadcast(self, text: str) -> int:
        delivered = 0
        for conn in self.registry.snapshot():
            if conn.offer(text):
                delivered += 1
            elif conn.state is ConnectionState.OPEN:
                log.warning("Outbox full for %s, dropping event", conn.id[:8])
        return delivered

    async def serve(self, websocket: WebSocket) -> None:
        """Per-connection task: admit, read until the peer goes away, then remove."""
        conn = await self.on_connect(websocket)
        try:
            while conn.state is ConnectionState.OPEN:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is not None:
                    self.on_message(conn, raw)
        except _TRANSPORT_ERRORS as e:
            log.debug("Read from %s failed: %s", conn.id[:8], e)
        finally:
            if conn.state is ConnectionState.OPEN:
                conn.state = ConnectionState.CLOSING
            self.on_disconnect(conn)

    async def close_all(self, code: int = 1001, timeout: float | None = None) -> None:
        """Close every live transport (server shutdown). Errors are ignored."""
        members = self.registry.snapshot()
        if not members:
            return
        for conn in members:
            conn.state = ConnectionState.CLOSING

        async def _close(conn: Connection) -> None:
            try:
                await conn.transport.close(code=code, reason="Server shutdown")
            except _TRANSPORT_ERRORS as e:
                log.debug("Close of %s failed: %s", conn.id[:8], e)

        tasks = [asyncio.create_task(_close(c)) for c in members]
        _, pending = await asyncio.wait(tasks, timeout=timeout or config.close_timeout)
        for t in pending:
            t.cancel()
        for conn in members:
            self.registry.remove(conn)
        log.info("Closed %d connection(s) on shutdown", len(members))

    async def _write_loop(self, conn: Connection) -> None:
        while True:
            text = await conn.next_frame()
            try:
                await conn.transport.send_text(text)
            except _TRANSPORT_ERRORS as e:
                # Not retried; the rest of the broadcast is unaffected
                log.debug("Send to %s failed, evicting: %s", conn.id[:8], e)
                if conn.state is ConnectionState.OPEN:
                    conn.state = ConnectionState.CLOSING
                self.on_disconnect(conn)
                return
