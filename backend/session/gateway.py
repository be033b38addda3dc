"""
Session gateway.

Responsibilities:
- Owns one StreamSession per client connection
- Opens the model stream on connect; on failure sends one `error` and
  registers nothing
- Routes inbound JSON control frames (text, interrupt,
  audio_with_timestamp) to the session
- Routes inbound binary frames (WAV utterances, raw PCM) to the session as
  one model turn each
- Runs the session's model-event loop as a task and tears everything down
  on disconnect

Still NOT responsible for:
- Socket IO (the outbound sink does that)
- Model event demultiplexing (the session does that)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from audio.wav import prepare_for_model
from errors import ModelConnectionError, TransportError
from observability.logger import log_event, now_ms
from observability.metrics import timed
from protocol.control import (
    AudioWithTimestamp,
    ControlProtocolError,
    ErrorMessage,
    InterruptMessage,
    TextMessage,
    decode_control,
    looks_like_json,
)
from session.registry import SessionRegistry, new_session_id
from session.stream_session import OutboundSink, StreamFactory, StreamSession

if TYPE_CHECKING:
    from config import AppConfig


class SessionGateway:
    """
    One gateway == one client connection.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        registry: SessionRegistry,
        sink: OutboundSink,
        stream_factory: StreamFactory,
    ) -> None:
        self._config = config
        self._registry = registry
        self._sink = sink
        self._stream_factory = stream_factory

        self.session: StreamSession | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._pending_utterance_ts: int | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> bool:
        """
        Open the model session for this connection.

        Returns:
            True if the session is open and registered.
            False if the model could not be reached; the client has been
            sent an `error` and nothing was registered.
        """
        session = StreamSession(
            session_id=new_session_id(),
            stream_factory=self._stream_factory,
            sink=self._sink,
            model_config=self._config.model,
        )

        log_event({
            "ts_ms": now_ms(),
            "event_type": "WS_CONNECTED",
            "session_id": session.session_id,
        })

        try:
            await session.open()
        except ModelConnectionError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MODEL_CONNECT_FAILED",
                "level": "ERROR",
                "session_id": session.session_id,
                "error": str(e),
            })
            await self._send_error_best_effort(f"Failed to connect to Gemini: {e}")
            return False

        self.session = session
        self._registry.add(session)
        self._pump_task = asyncio.create_task(session.run())
        return True

    async def wait_closed(self) -> None:
        """Return once the session's model-event loop has ended."""
        if self._pump_task is not None:
            await asyncio.gather(self._pump_task, return_exceptions=True)

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """Tear down the session and its model stream."""
        if self.session is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return

        session = self.session
        self.session = None

        task = self._pump_task
        self._pump_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await session.close()
        self._registry.remove(session.session_id)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "WS_DISCONNECTED",
            "session_id": session.session_id,
            "reason": reason,
            "active_sessions": len(self._registry),
        })

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> None:
        """Route an inbound JSON control frame."""
        session = self._require_session("MESSAGE_WITHOUT_SESSION", len(payload))
        if session is None:
            return

        try:
            msg = decode_control(payload)
        except ControlProtocolError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CONTROL_DECODE_ERROR",
                "level": "WARNING",
                "session_id": session.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            await self._sink.send_control(ErrorMessage(f"Failed to process message: {e}"))
            return

        if isinstance(msg, TextMessage):
            try:
                await session.submit_text(msg.text)
            except ModelConnectionError as e:
                await self._sink.send_control(ErrorMessage(f"Failed to process message: {e}"))

        elif isinstance(msg, InterruptMessage):
            session.interrupt(msg.timestamp)

        elif isinstance(msg, AudioWithTimestamp):
            self._pending_utterance_ts = msg.timestamp

        else:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "UNEXPECTED_CLIENT_MESSAGE",
                "session_id": session.session_id,
                "msg_type": msg.to_dict()["type"],
            })

    async def on_binary_message(self, payload: bytes) -> None:
        """
        Route an inbound binary frame.

        JSON sent as binary is handled as a control frame; anything else is
        one complete audio turn.
        """
        if looks_like_json(payload):
            try:
                text = payload.decode("utf-8")
            except UnicodeDecodeError:
                text = None
            if text is not None:
                await self.on_json_message(text)
                return

        session = self._require_session("BINARY_WITHOUT_SESSION", len(payload))
        if session is None:
            return

        announced_ts = self._pending_utterance_ts
        self._pending_utterance_ts = None

        with timed("client_audio_prepare", session_id=session.session_id):
            audio = prepare_for_model(payload)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "CLIENT_AUDIO_RECEIVED",
            "session_id": session.session_id,
            "payload_len": len(payload),
            "wav": audio.header is not None,
            "mime_type": audio.mime_type,
            "announced_ts_ms": announced_ts,
            "transit_ms": now_ms() - announced_ts if announced_ts is not None else None,
        })

        try:
            await session.submit_audio(audio.data, audio.mime_type)
        except ModelConnectionError as e:
            await self._sink.send_control(ErrorMessage(f"Failed to process audio: {e}"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_session(self, event_type: str, payload_len: int) -> StreamSession | None:
        if self.session is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": event_type,
                "payload_len": payload_len,
            })
        return self.session

    async def _send_error_best_effort(self, message: str) -> None:
        try:
            await self._sink.send_control(ErrorMessage(message))
        except TransportError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "ERROR_NOT_DELIVERED",
                "level": "WARNING",
                "message": message,
                "error": str(e),
            })
