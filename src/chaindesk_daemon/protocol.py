"""Length-prefixed msgpack protocol spoken over the daemon's Unix socket.

One request frame per connection. Plain commands answer with a single
``Response`` frame. Streaming commands (``chat.turn``) answer with an ack
``Response`` followed by ``EventEnvelope`` frames until the daemon closes the
connection.
"""

from __future__ import annotations

import struct
import uuid
from typing import Any

import msgpack
from pydantic import BaseModel, Field

MAX_FRAME_BYTES = 16 * 1024 * 1024
CHAT_TOPIC = "chat"


class FrameTooLarge(ValueError):
    pass


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    suggestion: str | None = None


class Request(BaseModel):
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    command: str
    params: dict[str, Any] = Field(default_factory=dict)
    stream: bool = False
    source: str = "cli"


class Response(BaseModel):
    request_id: str
    ok: bool
    data: Any | None = None
    error: ErrorResponse | None = None


class EventEnvelope(BaseModel):
    request_id: str | None = None
    topic: str
    data: dict[str, Any]


def encode_model(model: BaseModel) -> bytes:
    return msgpack.packb(model.model_dump(mode="json"), use_bin_type=True)


def _unpack(payload: bytes) -> Any:
    return msgpack.unpackb(payload, raw=False, strict_map_key=False)


def decode_request(payload: bytes) -> Request:
    return Request.model_validate(_unpack(payload))


def decode_response(payload: bytes) -> Response:
    return Response.model_validate(_unpack(payload))


def decode_event(payload: bytes) -> EventEnvelope:
    return EventEnvelope.model_validate(_unpack(payload))


def frame_payload(payload: bytes) -> bytes:
    if len(payload) > MAX_FRAME_BYTES:
        raise FrameTooLarge(f"frame of {len(payload)} bytes exceeds {MAX_FRAME_BYTES}")
    return struct.pack("!I", len(payload)) + payload


def frame_event(request_id: str | None, data: dict[str, Any], *, topic: str = CHAT_TOPIC) -> bytes:
    return frame_payload(encode_model(EventEnvelope(request_id=request_id, topic=topic, data=data)))


async def read_framed(reader: Any) -> bytes:
    header = await reader.readexactly(4)
    size = struct.unpack("!I", header)[0]
    if size > MAX_FRAME_BYTES:
        raise FrameTooLarge(f"incoming frame of {size} bytes exceeds {MAX_FRAME_BYTES}")
    return await reader.readexactly(size)
