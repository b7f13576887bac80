# app.py -- FastAPI application exposing the relay's single WebSocket endpoint
# Single process: one broadcast hub shared by every connection task.
# Entry point: `python -m chat_relay.app` or `chat-relay` CLI.

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket

from .config import config
from .hub import BroadcastHub
from .registry import ConnectionRegistry

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the hub on startup, close remaining clients on shutdown."""
    hub = BroadcastHub(ConnectionRegistry(), queue_size=config.queue_size)
    app.state.hub = hub

    log.info("Chat relay started -- ws://%s:%d/", config.host, config.port)
    yield

    await hub.close_all(timeout=config.close_timeout)
    log.info("Chat relay stopped")


# WebSocket upgrade is the only surface; no docs or schema routes
app = FastAPI(
    title="Chat Relay",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


@app.websocket("/")
async def relay_endpoint(websocket: WebSocket) -> None:
    """Chat and typing relay. Every frame is echoed to all clients, sender included."""
    hub: BroadcastHub = websocket.app.state.hub
    await hub.serve(websocket)


def main() -> None:
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    uvicorn.run(
        "chat_relay.app:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        ws_max_size=config.max_message_bytes,
        ws_ping_interval=config.ping_interval,
        ws_ping_timeout=config.ping_timeout,
    )


if __name__ == "__main__":
    main()
