# events.py -- Wire envelopes relayed between chat clients
# Tagged union on "type". Anything that does not decode is dropped by the hub.

from __future__ import annotations

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

log = logging.getLogger(__name__)


class _WireModel(BaseModel):
    # Unknown keys ride along untouched; JSON types are never coerced.
    model_config = ConfigDict(extra="allow", strict=True)


class ChatMessage(_WireModel):
    id: str
    text: str
    sender: str
    timestamp: str | int | float


class TypingSignal(_WireModel):
    sender: str
    timestamp: int | float


class MessageEnvelope(_WireModel):
    type: Literal["message"]
    payload: ChatMessage


class TypingEnvelope(_WireModel):
    type: Literal["typing"]
    payload: TypingSignal


Envelope = Annotated[Union[MessageEnvelope, TypingEnvelope], Field(discriminator="type")]

_envelope_adapter: TypeAdapter[MessageEnvelope | TypingEnvelope] = TypeAdapter(Envelope)


def decode(raw: str | bytes) -> MessageEnvelope | TypingEnvelope | None:
    """Parse one inbound frame. Returns None for anything unrecognized."""
    try:
        return _envelope_adapter.validate_json(raw)
    except ValidationError as e:
        log.debug("Discarding malformed envelope (%d errors)", e.error_count())
        return None
    except UnicodeDecodeError:
        log.debug("Discarding envelope with invalid UTF-8")
        return None


def encode(envelope: MessageEnvelope | TypingEnvelope) -> str:
    """Re-serialize an envelope for the outbound text frame."""
    return envelope.model_dump_json()
