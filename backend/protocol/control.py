"""
JSON control frames exchanged over the client <-> server channel.

Text frames carry one JSON object with a "type" discriminator:

    {"type": "status", "message": "..."}          server -> client
    {"type": "error", "message": "..."}           server -> client
    {"type": "audio"}                             server -> client; next binary frame is PCM
    {"type": "interrupt", "timestamp": 1700...}   client -> server
    {"type": "text", "text": "..."}               client -> server
    {"type": "audio_with_timestamp", "timestamp": 1700...}
                                                  client -> server; next binary frame is
                                                  a full recorded utterance (WAV)

Binary frames carry raw audio only.

Usage example:

    msg = decode_control(raw_text)
    if isinstance(msg, TextMessage):
        await session.submit_text(msg.text)

    await ws.send_text(encode_control(StatusMessage("Turn complete")))
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from constants import JSON_FRAME_FIRST_BYTE


# -------------------------
# Exceptions
# -------------------------

class ControlProtocolError(Exception):
    """
    Raised when a text frame is not a well-formed control message.

    The frame is dropped; the session continues.
    """


# -------------------------
# Message types
# -------------------------

class ControlType(str, Enum):
    """Discriminator values of control frames."""

    STATUS = "status"
    ERROR = "error"
    AUDIO = "audio"
    INTERRUPT = "interrupt"
    TEXT = "text"
    AUDIO_WITH_TIMESTAMP = "audio_with_timestamp"


@dataclass(frozen=True)
class StatusMessage:
    """Progress notification (connected, setup complete, turn complete)."""
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": ControlType.STATUS.value, "message": self.message}


@dataclass(frozen=True)
class ErrorMessage:
    """Error surfaced to the client."""
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": ControlType.ERROR.value, "message": self.message}


@dataclass(frozen=True)
class AudioAnnouncement:
    """Announces that the next binary frame is model audio."""

    def to_dict(self) -> dict[str, Any]:
        return {"type": ControlType.AUDIO.value}


@dataclass(frozen=True)
class InterruptMessage:
    """Barge-in signal; timestamp in wall-clock milliseconds."""
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": ControlType.INTERRUPT.value, "timestamp": self.timestamp}


@dataclass(frozen=True)
class TextMessage:
    """A complete typed user turn."""
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": ControlType.TEXT.value, "text": self.text}


@dataclass(frozen=True)
class AudioWithTimestamp:
    """Announces that the next binary frame is a full recorded utterance."""
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": ControlType.AUDIO_WITH_TIMESTAMP.value,
            "timestamp": self.timestamp,
        }


ControlMessage = Union[
    StatusMessage,
    ErrorMessage,
    AudioAnnouncement,
    InterruptMessage,
    TextMessage,
    AudioWithTimestamp,
]


# -------------------------
# Encode / decode
# -------------------------

def encode_control(msg: ControlMessage) -> str:
    """Serialize a control message to a JSON text frame."""
    return json.dumps(msg.to_dict(), ensure_ascii=False)


def _require(data: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    value = data.get(key)
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ControlProtocolError(f"{data.get('type')!r} frame needs a valid {key!r}")
    return value


def _timestamp(data: dict[str, Any]) -> int:
    value = _require(data, "timestamp", (int, float))
    try:
        return int(value)
    except (OverflowError, ValueError) as e:
        raise ControlProtocolError(f"invalid timestamp: {value!r}") from e


def decode_control(payload: str | bytes) -> ControlMessage:
    """
    Parse a JSON text frame into a control message.

    Raises:
        ControlProtocolError on invalid JSON, unknown type or missing fields.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ControlProtocolError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ControlProtocolError("control frame must be a JSON object")

    raw_type = data.get("type")
    try:
        msg_type = ControlType(raw_type)
    except ValueError as e:
        raise ControlProtocolError(f"unknown control type: {raw_type!r}") from e

    if msg_type is ControlType.STATUS:
        return StatusMessage(message=str(data.get("message", "")))
    if msg_type is ControlType.ERROR:
        return ErrorMessage(message=str(data.get("message", "")))
    if msg_type is ControlType.AUDIO:
        return AudioAnnouncement()
    if msg_type is ControlType.INTERRUPT:
        return InterruptMessage(timestamp=_timestamp(data))
    if msg_type is ControlType.TEXT:
        return TextMessage(text=_require(data, "text", str))
    return AudioWithTimestamp(timestamp=_timestamp(data))


def looks_like_json(payload: bytes) -> bool:
    """
    True if a binary frame is really a JSON control frame.

    Some clients send every frame as binary; audio never starts with "{".
    """
    return bool(payload) and payload[0] == JSON_FRAME_FIRST_BYTE
