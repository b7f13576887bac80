# conftest.py -- Shared test fixtures

from __future__ import annotations

import asyncio
import json

import pytest
from starlette.websockets import WebSocketState

from chat_relay.hub import BroadcastHub
from chat_relay.registry import ConnectionRegistry


class FakeWebSocket:
    """Minimal stand-in for fastapi.WebSocket, driven from the test."""

    def __init__(
        self, *, fail_on_send: bool = False, closed: bool = False, slow: bool = False
    ) -> None:
        self.accepted = False
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.client_state = WebSocketState.DISCONNECTED if closed else WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self._fail_on_send = fail_on_send
        self._inbound: asyncio.Queue[dict] = asyncio.Queue()
        # Cleared gate blocks every send until the test opens it
        self.gate = asyncio.Event()
        if not slow:
            self.gate.set()

    @property
    def received(self) -> list[dict]:
        return [json.loads(t) for t in self.sent]

    async def accept(self) -> None:
        self.accepted = True
        self.application_state = WebSocketState.CONNECTED
        if self.client_state == WebSocketState.CONNECTING:
            self.client_state = WebSocketState.CONNECTED

    async def send_text(self, text: str) -> None:
        await self.gate.wait()
        if self._fail_on_send:
            raise RuntimeError("connection closed")
        self.sent.append(text)

    async def receive(self) -> dict:
        message = await self._inbound.get()
        if isinstance(message, Exception):
            raise message
        return message

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED
        self.hang_up(code)

    def feed(self, data: str | bytes | dict) -> None:
        """Queue an inbound frame as the peer would send it."""
        if isinstance(data, dict):
            data = json.dumps(data)
        key = "bytes" if isinstance(data, bytes) else "text"
        self._inbound.put_nowait({"type": "websocket.receive", key: data})

    def fail_read(self, exc: Exception) -> None:
        self._inbound.put_nowait(exc)

    def hang_up(self, code: int = 1000) -> None:
        self.client_state = WebSocketState.DISCONNECTED
        self._inbound.put_nowait({"type": "websocket.disconnect", "code": code})


async def settle(rounds: int = 10) -> None:
    """Let writer and serve tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def hub(registry: ConnectionRegistry) -> BroadcastHub:
    return BroadcastHub(registry, queue_size=16)


@pytest.fixture
def chat_envelope() -> dict:
    return {
        "type": "message",
        "payload": {
            "id": "1",
            "text": "hi",
            "sender": "A",
            "timestamp": "2024-05-01T12:00:00.000Z",
        },
    }


@pytest.fixture
def typing_envelope() -> dict:
    return {"type": "typing", "payload": {"sender": "A", "timestamp": 1714564800000}}
