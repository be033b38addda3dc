# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import numpy as np

from config import AppConfig, ModelConfig
from errors import ModelConnectionError, PlaybackError
from protocol.control import ControlMessage, encode_control
from session.model_events import Closed, ModelEvent, Opened, SetupComplete
from session.model_stream import ModelStream


MODEL_CONFIG = ModelConfig(
    model_id="models/test-live",
    voice_id="Puck",
    language_code="en-IN",
    system_instruction="test",
    setup_timeout_s=1.0,
    response_timeout_s=2.0,
)

APP_CONFIG = AppConfig(
    env="test",
    log_level="INFO",
    host="127.0.0.1",
    port=3000,
    gemini_api_key="test-key",
    model=MODEL_CONFIG,
    enable_json_logs=True,
)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout=timeout)


# ---------------------------------------------------------------------
# Model side
# ---------------------------------------------------------------------

class FakeModelStream(ModelStream):
    """
    Scripted model stream.

    `replies[i]` is pushed as events after the i-th submitted turn.
    """

    def __init__(
        self,
        *,
        replies: list[list[ModelEvent]] | None = None,
        fail_open: str | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.fail_open = fail_open
        self.sent: list[tuple[list[dict[str, Any]], bool]] = []
        self.opened = False
        self.closed = False
        self.events: asyncio.Queue[ModelEvent] = asyncio.Queue()

    def push(self, *events: ModelEvent) -> None:
        for event in events:
            self.events.put_nowait(event)

    async def open(self) -> None:
        if self.fail_open is not None:
            raise ModelConnectionError(self.fail_open)
        self.opened = True
        self.push(Opened(), SetupComplete())

    async def send_client_content(self, parts: list[dict[str, Any]], *, turn_complete: bool = True) -> None:
        if self.closed:
            raise ModelConnectionError("model stream is not open")
        self.sent.append((parts, turn_complete))
        if self.replies:
            self.push(*self.replies.pop(0))

    async def next_event(self) -> ModelEvent:
        return await self.events.get()

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.push(Closed(reason="closed by relay"))


class StreamFactoryRecorder:
    """Stream factory handing out one prepared stream per session."""

    def __init__(self, *streams: FakeModelStream) -> None:
        self._streams = list(streams)
        self.session_ids: list[str] = []

    def __call__(self, session_id: str) -> FakeModelStream:
        self.session_ids.append(session_id)
        return self._streams.pop(0)


# ---------------------------------------------------------------------
# Client-facing side
# ---------------------------------------------------------------------

class RecordingSink:
    """OutboundSink recording frames as ("json", dict) / ("bytes", data)."""

    def __init__(self) -> None:
        self.frames: list[tuple[str, Any]] = []

    async def send_control(self, msg: ControlMessage) -> None:
        self.frames.append(("json", json.loads(encode_control(msg))))

    async def send_audio(self, pcm: bytes) -> None:
        self.frames.append(("json", {"type": "audio"}))
        self.frames.append(("bytes", pcm))

    def json_of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [f for kind, f in self.frames if kind == "json" and f["type"] == msg_type]

    def statuses(self) -> list[str]:
        return [m["message"] for m in self.json_of_type("status")]

    def errors(self) -> list[str]:
        return [m["message"] for m in self.json_of_type("error")]


class FakeWebSocket:
    """The send half of a Starlette WebSocket."""

    def __init__(self) -> None:
        self.frames: list[tuple[str, Any]] = []

    async def send_text(self, text: str) -> None:
        self.frames.append(("json", json.loads(text)))

    async def send_bytes(self, data: bytes) -> None:
        self.frames.append(("bytes", data))


# ---------------------------------------------------------------------
# Client devices
# ---------------------------------------------------------------------

class FakeOutput:
    """
    AudioOutput recording every played buffer.

    With block=True each play() waits until release() or stop().
    """

    def __init__(self, *, block: bool = False, fail_times: int = 0) -> None:
        self.block = block
        self.fail_times = fail_times
        self.played: list[np.ndarray] = []
        self.stops = 0
        self.resumes = 0
        self._gate: asyncio.Event | None = None

    async def resume(self) -> None:
        self.resumes += 1

    async def play(self, buffer: np.ndarray, sample_rate_hz: int) -> None:
        if self.fail_times:
            self.fail_times -= 1
            raise PlaybackError("device busy")
        self.played.append(np.array(buffer, copy=True))
        if self.block:
            self._gate = asyncio.Event()
            await self._gate.wait()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def stop(self) -> None:
        self.stops += 1
        self.release()


class FakeCapture:
    """AudioCapture fed by the test through emit()."""

    def __init__(self, sample_rate_hz: int = 48_000) -> None:
        self.sample_rate_hz = sample_rate_hz
        self.starts = 0
        self.stops = 0
        self._on_chunk: Callable[[np.ndarray], None] | None = None

    async def start(self, on_chunk: Callable[[np.ndarray], None]) -> None:
        self.starts += 1
        self._on_chunk = on_chunk

    async def stop(self) -> None:
        self.stops += 1
        self._on_chunk = None

    def emit(self, frames: np.ndarray) -> None:
        if self._on_chunk is not None:
            self._on_chunk(frames)


class FakeChannel:
    """ControlChannel recording what the client sends."""

    def __init__(self) -> None:
        self.sent: list[Any] = []

    async def send_control(self, msg: ControlMessage) -> None:
        self.sent.append(msg)

    async def send_binary(self, data: bytes) -> None:
        self.sent.append(data)


def pcm_chunk(value: int, samples: int) -> bytes:
    return np.full(samples, value, dtype="<i2").tobytes()
