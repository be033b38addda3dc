"""
Events produced by the model stream.

Rules:
- Events describe facts that have occurred on the model connection.
- Events carry data only (no behavior).
- One stream produces events in wire order; one session loop consumes them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ModelEventType(str, Enum):
    """Discriminants of model stream events."""

    OPENED = "OPENED"
    SETUP_COMPLETE = "SETUP_COMPLETE"
    AUDIO_PART = "AUDIO_PART"
    TEXT_PART = "TEXT_PART"
    TURN_COMPLETE = "TURN_COMPLETE"
    INTERRUPTED = "INTERRUPTED"
    ERRORED = "ERRORED"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class Opened:
    """The socket is connected and the setup message was sent."""
    event_type: ModelEventType = ModelEventType.OPENED


@dataclass(frozen=True)
class SetupComplete:
    """The model acknowledged the setup message."""
    event_type: ModelEventType = ModelEventType.SETUP_COMPLETE


@dataclass(frozen=True)
class AudioPart:
    """One inline audio part of a model turn, already base64-decoded."""
    data: bytes
    mime_type: str
    event_type: ModelEventType = ModelEventType.AUDIO_PART


@dataclass(frozen=True)
class TextPart:
    """One text part of a model turn."""
    text: str
    event_type: ModelEventType = ModelEventType.TEXT_PART


@dataclass(frozen=True)
class TurnComplete:
    """The model finished its turn."""
    event_type: ModelEventType = ModelEventType.TURN_COMPLETE


@dataclass(frozen=True)
class Interrupted:
    """The model stopped generating because new user input arrived."""
    event_type: ModelEventType = ModelEventType.INTERRUPTED


@dataclass(frozen=True)
class Errored:
    """The connection failed; always followed by Closed."""
    message: str
    event_type: ModelEventType = ModelEventType.ERRORED


@dataclass(frozen=True)
class Closed:
    """Terminal event. No further events follow."""
    reason: str
    event_type: ModelEventType = ModelEventType.CLOSED


ModelEvent = Union[
    Opened,
    SetupComplete,
    AudioPart,
    TextPart,
    TurnComplete,
    Interrupted,
    Errored,
    Closed,
]
