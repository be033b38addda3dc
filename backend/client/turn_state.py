"""
Pure client turn-state reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).

States:
    IDLE        nothing is playing, nothing is being recorded
    RESPONDING  model audio is queued or playing
    RECORDING   capture is active; no device output

Transitions:
    IDLE       --ModelAudioArrived-->  RESPONDING   EnqueueAudio
    RESPONDING --ModelAudioArrived-->  RESPONDING   EnqueueAudio
    RECORDING  --ModelAudioArrived-->  RECORDING    DropAudio
    RESPONDING --PlaybackDrained---->  IDLE
    any        --RecordingStarted--->  RECORDING    StopPlayback, SendInterrupt, StartCapture
    RECORDING  --RecordingStopped--->  IDLE         StopCapture, SubmitRecording
    RECORDING  --CaptureFailed------>  IDLE

StopPlayback is always emitted before SendInterrupt, and SendInterrupt
before anything captured is submitted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


# =============================================================================
# State
# =============================================================================

class TurnState(str, Enum):
    """Mutually exclusive client turn states."""

    IDLE = "IDLE"
    RESPONDING = "RESPONDING"
    RECORDING = "RECORDING"


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class ModelAudioArrived:
    """A PCM chunk of model audio was received."""
    data: bytes


@dataclass(frozen=True)
class PlaybackDrained:
    """Playback finished and nothing is pending."""


@dataclass(frozen=True)
class RecordingStarted:
    """User initiated capture."""
    timestamp_ms: int


@dataclass(frozen=True)
class RecordingStopped:
    """User ended capture."""
    timestamp_ms: int


@dataclass(frozen=True)
class CaptureFailed:
    """The capture device could not be opened."""
    reason: str


TurnEvent = Union[
    ModelAudioArrived,
    PlaybackDrained,
    RecordingStarted,
    RecordingStopped,
    CaptureFailed,
]


# =============================================================================
# Commands
# =============================================================================

@dataclass(frozen=True)
class StopPlayback:
    """Discard pending chunks and stop device output now."""


@dataclass(frozen=True)
class SendInterrupt:
    """Send `interrupt{timestamp}` to the server."""
    timestamp_ms: int


@dataclass(frozen=True)
class StartCapture:
    """Open the capture device."""


@dataclass(frozen=True)
class StopCapture:
    """Close the capture device."""


@dataclass(frozen=True)
class SubmitRecording:
    """Convert the captured audio and submit it as one turn."""
    timestamp_ms: int


@dataclass(frozen=True)
class EnqueueAudio:
    """Hand a model audio chunk to the playback buffer."""
    data: bytes


@dataclass(frozen=True)
class DropAudio:
    """Discard a model audio chunk (arrived while recording)."""
    size: int


@dataclass(frozen=True)
class LogEvent:
    """Emit a structured log event."""
    event_type: str
    details: dict[str, Any] = field(default_factory=dict)


TurnCommand = Union[
    StopPlayback,
    SendInterrupt,
    StartCapture,
    StopCapture,
    SubmitRecording,
    EnqueueAudio,
    DropAudio,
    LogEvent,
]


# =============================================================================
# Reducer
# =============================================================================

def _ignored(state: TurnState, event: TurnEvent) -> tuple[TurnState, list[TurnCommand]]:
    return state, [
        LogEvent(
            "TURN_EVENT_IGNORED",
            {"state": state.value, "event": type(event).__name__},
        )
    ]


def _transition(old: TurnState, new: TurnState, event: TurnEvent) -> LogEvent:
    return LogEvent(
        "TURN_STATE_TRANSITION",
        {"from": old.value, "to": new.value, "event": type(event).__name__},
    )


def reduce(state: TurnState, event: TurnEvent) -> tuple[TurnState, list[TurnCommand]]:
    """Apply one event to the turn state."""
    if isinstance(event, ModelAudioArrived):
        if state is TurnState.RECORDING:
            return state, [DropAudio(size=len(event.data))]
        commands: list[TurnCommand] = [EnqueueAudio(event.data)]
        if state is TurnState.IDLE:
            commands.append(_transition(state, TurnState.RESPONDING, event))
        return TurnState.RESPONDING, commands

    if isinstance(event, PlaybackDrained):
        if state is not TurnState.RESPONDING:
            return _ignored(state, event)
        return TurnState.IDLE, [_transition(state, TurnState.IDLE, event)]

    if isinstance(event, RecordingStarted):
        # A second start while recording is not a new recording start
        if state is TurnState.RECORDING:
            return _ignored(state, event)
        return TurnState.RECORDING, [
            StopPlayback(),
            SendInterrupt(event.timestamp_ms),
            StartCapture(),
            _transition(state, TurnState.RECORDING, event),
        ]

    if isinstance(event, RecordingStopped):
        if state is not TurnState.RECORDING:
            return _ignored(state, event)
        return TurnState.IDLE, [
            StopCapture(),
            SubmitRecording(event.timestamp_ms),
            _transition(state, TurnState.IDLE, event),
        ]

    if isinstance(event, CaptureFailed):
        if state is not TurnState.RECORDING:
            return _ignored(state, event)
        return TurnState.IDLE, [_transition(state, TurnState.IDLE, event)]

    return _ignored(state, event)
