# config.py -- All configuration from environment variables
# Loads .env file if present, then reads os.environ.

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

log = logging.getLogger(__name__)

# Walk up from config.py to find .env (supports both src layout and installed)
_project_root = Path(__file__).resolve().parent.parent.parent
load_dotenv(_project_root / ".env")
# Also try cwd (Docker WORKDIR or wherever the user runs from)
load_dotenv(override=False)


def _safe_int(
    name: str, default: int, min_val: int | None = None, max_val: int | None = None
) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except (ValueError, TypeError):
        log.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return default
    if min_val is not None and val < min_val:
        log.warning("%s=%d below minimum %d, using %d", name, val, min_val, min_val)
        return min_val
    if max_val is not None and val > max_val:
        log.warning("%s=%d above maximum %d, using %d", name, val, max_val, max_val)
        return max_val
    return val


class Config:
    # Listening socket (single WebSocket endpoint)
    host: str = os.getenv("RELAY_HOST", "0.0.0.0")
    port: int = _safe_int("RELAY_PORT", 3001, min_val=1, max_val=65535)

    # Per-recipient outbox; events are dropped for a recipient once it is full
    queue_size: int = _safe_int("RELAY_QUEUE_SIZE", 256, min_val=1)

    # WebSocket transport
    max_message_bytes: int = _safe_int("RELAY_MAX_MESSAGE_BYTES", 65536, min_val=128)
    ping_interval: int = _safe_int("RELAY_PING_INTERVAL", 20, min_val=1)
    ping_timeout: int = _safe_int("RELAY_PING_TIMEOUT", 20, min_val=1)
    close_timeout: int = _safe_int("RELAY_CLOSE_TIMEOUT", 5, min_val=1)

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


config = Config()
