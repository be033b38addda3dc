"""
One client connection's session with the dialogue model.

Responsibilities:
- Own the model stream handle (exclusively) and close it on teardown
- Submit exactly one model turn per client text/audio message
- Demultiplex model events into client notifications:
    AudioPart      -> `audio` announcement + raw PCM binary frame
    Opened         -> status "Connected to Gemini Live"
    SetupComplete  -> status "Setup complete"
    TurnComplete   -> status "Turn complete"
    Errored/Closed -> one `error`, then teardown
- Mirror client barge-in: after `interrupt`, audio of the in-flight model
  turn is no longer forwarded
- Bound the wait for a model response after a turn is submitted

Non-responsibilities:
- Parsing client frames (gateway)
- Socket IO (the outbound sink)
"""

from __future__ import annotations

import asyncio
import base64
import time
from enum import Enum
from typing import Callable, Protocol

from config import ModelConfig
from constants import (
    STATUS_CONNECTED,
    STATUS_SETUP_COMPLETE,
    STATUS_TURN_COMPLETE,
)
from errors import ModelConnectionError, TransportError
from observability.logger import log_event, now_ms
from observability.metrics import timed
from protocol.control import ControlMessage, ErrorMessage, StatusMessage
from session.model_events import (
    AudioPart,
    Closed,
    Errored,
    Interrupted,
    ModelEvent,
    Opened,
    SetupComplete,
    TextPart,
    TurnComplete,
)
from session.model_stream import ModelStream, inline_audio_part, text_part


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

class SessionState(str, Enum):
    """Lifecycle of a StreamSession."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class OutboundSink(Protocol):
    """Where the session sends client-bound frames."""

    async def send_control(self, msg: ControlMessage) -> None:
        """Send one JSON control frame. Raises TransportError."""

    async def send_audio(self, pcm: bytes) -> None:
        """Send an `audio` announcement and its binary frame back to back. Raises TransportError."""


StreamFactory = Callable[[str], ModelStream]


# ---------------------------------------------------------------------
# StreamSession
# ---------------------------------------------------------------------

class StreamSession:
    """
    Session == one model stream == one client connection.

    Lifecycle:
    1. open()  connecting -> open (or closed + ModelConnectionError)
    2. run()   consumes model events until the stream closes, errors or
               times out
    3. close() closing -> closed; idempotent
    """

    def __init__(
        self,
        *,
        session_id: str,
        stream_factory: StreamFactory,
        sink: OutboundSink,
        model_config: ModelConfig,
    ) -> None:
        self.session_id = session_id
        self.state: SessionState = SessionState.CONNECTING
        self.created_at: float = time.time()

        self._stream_factory = stream_factory
        self._sink = sink
        self._response_timeout_s = model_config.response_timeout_s

        self._stream: ModelStream | None = None

        self._turns_submitted = 0
        # Submitted turns whose turnComplete has not arrived yet
        self._turns_outstanding = 0
        self._suppress_audio = False
        self._error_sent = False
        self._audio_parts_forwarded = 0
        self._audio_parts_dropped = 0
        self._turn_submitted_at_ns: int | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """
        Open the model stream and negotiate configuration.

        Raises:
            ModelConnectionError; the session is closed afterwards.
        """
        stream = self._stream_factory(self.session_id)
        try:
            with timed("model_stream_open", session_id=self.session_id):
                await stream.open()
        except ModelConnectionError:
            self.state = SessionState.CLOSED
            await stream.close()
            raise

        self._stream = stream
        self.state = SessionState.OPEN
        log_event({
            "ts_ms": now_ms(),
            "event_type": "SESSION_OPENED",
            **self.log_context(),
        })

    async def close(self) -> None:
        """Tear down the session and release the model stream."""
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        self.state = SessionState.CLOSING

        stream = self._stream
        self._stream = None
        if stream is not None:
            await stream.close()

        self.state = SessionState.CLOSED
        log_event({
            "ts_ms": now_ms(),
            "event_type": "SESSION_CLOSED",
            **self.log_context(),
            "turns_submitted": self._turns_submitted,
            "audio_parts_forwarded": self._audio_parts_forwarded,
            "audio_parts_dropped": self._audio_parts_dropped,
        })

    @property
    def is_open(self) -> bool:
        """True while turns can be submitted."""
        return self.state is SessionState.OPEN and self._stream is not None

    # ------------------------------------------------------------------
    # Client -> model
    # ------------------------------------------------------------------

    async def submit_text(self, text: str) -> None:
        """Submit one complete text turn."""
        await self._submit([text_part(text)], kind="text", size=len(text))

    async def submit_audio(self, audio: bytes, mime_type: str) -> None:
        """Submit one complete audio turn (PCM body + mime tag)."""
        part = inline_audio_part(
            mime_type=mime_type,
            data_b64=base64.b64encode(audio).decode("ascii"),
        )
        await self._submit([part], kind="audio", size=len(audio), mime_type=mime_type)

    def interrupt(self, timestamp_ms: int) -> None:
        """
        Client barge-in.

        Takes effect before the next model event is handled: remaining
        audio of the in-flight model turn is dropped.
        """
        self._suppress_audio = True
        log_event({
            "ts_ms": now_ms(),
            "event_type": "CLIENT_INTERRUPT",
            **self.log_context(),
            "client_ts_ms": timestamp_ms,
            "turns_outstanding": self._turns_outstanding,
        })

    async def _submit(self, parts: list[dict], *, kind: str, size: int, mime_type: str | None = None) -> None:
        if not self.is_open:
            raise ModelConnectionError(f"session {self.session_id} is {self.state.value}")
        assert self._stream is not None

        await self._stream.send_client_content(parts, turn_complete=True)

        # A new turn starts; audio produced for it is forwarded again
        self._suppress_audio = False
        self._turns_outstanding += 1
        self._turn_submitted_at_ns = time.monotonic_ns()
        self._turns_submitted += 1

        log_event({
            "ts_ms": now_ms(),
            "event_type": "TURN_SUBMITTED",
            **self.log_context(),
            "kind": kind,
            "size": size,
            "mime_type": mime_type,
            "turn": self._turns_submitted,
        })

    # ------------------------------------------------------------------
    # Model -> client
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        Consume model events until the session ends, then tear down.

        Single consumer; never runs concurrently with itself.
        """
        try:
            while self.is_open:
                assert self._stream is not None
                try:
                    if self._turns_outstanding:
                        event = await asyncio.wait_for(
                            self._stream.next_event(),
                            timeout=self._response_timeout_s,
                        )
                    else:
                        event = await self._stream.next_event()
                except asyncio.TimeoutError:
                    await self._notify_error(
                        f"Gemini response timed out after {self._response_timeout_s:g}s"
                    )
                    break

                if not await self._handle_event(event):
                    break
        except TransportError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SESSION_TRANSPORT_ERROR",
                "level": "WARNING",
                **self.log_context(),
                "error": str(e),
            })
        finally:
            await self.close()

    async def _handle_event(self, event: ModelEvent) -> bool:
        """Handle one event. Returns False when the session must end."""
        if isinstance(event, Opened):
            await self._sink.send_control(StatusMessage(STATUS_CONNECTED))

        elif isinstance(event, SetupComplete):
            await self._sink.send_control(StatusMessage(STATUS_SETUP_COMPLETE))

        elif isinstance(event, AudioPart):
            self._note_response(event)
            if self._suppress_audio:
                self._audio_parts_dropped += 1
                return True
            await self._sink.send_audio(event.data)
            self._audio_parts_forwarded += 1

        elif isinstance(event, TextPart):
            self._note_response(event)
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MODEL_TEXT_PART",
                "level": "DEBUG",
                **self.log_context(),
                "chars": len(event.text),
            })

        elif isinstance(event, TurnComplete):
            self._turns_outstanding = max(0, self._turns_outstanding - 1)
            self._suppress_audio = False
            await self._sink.send_control(StatusMessage(STATUS_TURN_COMPLETE))

        elif isinstance(event, Interrupted):
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MODEL_INTERRUPTED",
                **self.log_context(),
            })

        elif isinstance(event, Errored):
            await self._notify_error(f"Gemini error: {event.message}")

        elif isinstance(event, Closed):
            if self.state is SessionState.OPEN:
                await self._notify_error(f"Gemini session closed: {event.reason}")
            return False

        return True

    def _note_response(self, event: ModelEvent) -> None:
        """Log first-response latency once per submitted turn."""
        if self._turn_submitted_at_ns is not None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MODEL_FIRST_RESPONSE",
                **self.log_context(),
                "kind": event.event_type.value,
                "latency_ms": (time.monotonic_ns() - self._turn_submitted_at_ns) // 1_000_000,
            })
            self._turn_submitted_at_ns = None

    async def _notify_error(self, message: str) -> None:
        """Send at most one error to the client per session."""
        if self._error_sent:
            return
        self._error_sent = True
        log_event({
            "ts_ms": now_ms(),
            "event_type": "SESSION_ERROR",
            "level": "ERROR",
            **self.log_context(),
            "message": message,
        })
        await self._sink.send_control(ErrorMessage(message))

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, str]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "session_state": self.state.value,
        }
